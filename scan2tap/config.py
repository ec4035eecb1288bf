import os


class Settings:
    """Environment-driven configuration"""
    FRONTEND_URL = os.getenv("FRONTEND_URL", "https://scan2tap.com")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "10"))

    # Email (Resend)
    RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
    RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
    EMAIL_FROM = os.getenv("EMAIL_FROM", "Scan2Tap <scan2tap@richverseecotech.com>")
    CONTACT_ALERT_FROM = os.getenv("CONTACT_ALERT_FROM", "Scan2Tap Alert <scan2tap@richverseecotech.com>")
    ADMIN_NOTIFY_EMAIL = os.getenv("ADMIN_NOTIFY_EMAIL", "scan2tap@gmail.com")

    # Admin console
    ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
    ADMIN_SESSION_HOURS = int(os.getenv("ADMIN_SESSION_HOURS", "8"))
    ADMIN_RENEWAL_MINUTES = int(os.getenv("ADMIN_RENEWAL_MINUTES", "30"))

    # Payments (Paystack)
    PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_API_BASE = os.getenv("PAYSTACK_API_BASE", "https://api.paystack.co")
    PRO_MONTHLY_PRICE = float(os.getenv("PRO_MONTHLY_PRICE", "30"))
    PRO_ANNUAL_PRICE = float(os.getenv("PRO_ANNUAL_PRICE", "300"))

    # Physical card orders
    ORDER_SHIPPING_FEE = float(os.getenv("ORDER_SHIPPING_FEE", "15"))
    ORDER_TAX_RATE = float(os.getenv("ORDER_TAX_RATE", "0"))
