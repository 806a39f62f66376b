# backend/backoffice/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Sales
    DEFAULT_TAX_RATE = Decimal(os.environ.get("DEFAULT_TAX_RATE", "0.12"))  # 12% IVA
    CURRENCY = os.environ.get("CURRENCY", "GTQ")

    # Seller (emisor) data sent on every invoice
    FEL_SELLER_NIT = os.environ.get("FEL_SELLER_NIT", "12345678")
    FEL_SELLER_NAME = os.environ.get("FEL_SELLER_NAME", "Mi Empresa S.A.")
    FEL_SELLER_TRADE_NAME = os.environ.get("FEL_SELLER_TRADE_NAME", "Mi Empresa")
    FEL_SELLER_ADDRESS = os.environ.get("FEL_SELLER_ADDRESS", "Ciudad de Guatemala")
    FEL_SELLER_POSTAL_CODE = os.environ.get("FEL_SELLER_POSTAL_CODE", "01001")
    FEL_SELLER_DEPARTMENT = os.environ.get("FEL_SELLER_DEPARTMENT", "Guatemala")
    FEL_SELLER_MUNICIPALITY = os.environ.get("FEL_SELLER_MUNICIPALITY", "Guatemala")
    FEL_SELLER_EMAIL = os.environ.get("FEL_SELLER_EMAIL", "facturacion@miempresa.com")

    # Certifier: "simulated" (default, no network) or "http"
    CERTIFIER_BACKEND = os.environ.get("CERTIFIER_BACKEND", "simulated")
    FEL_API_URL = os.environ.get("FEL_API_URL", "https://api.certifier.example.com")
    FEL_API_KEY = os.environ.get("FEL_API_KEY", "")
    FEL_API_SECRET = os.environ.get("FEL_API_SECRET", "")
    FEL_API_TIMEOUT = float(os.environ.get("FEL_API_TIMEOUT", "30"))

    # "atomic" runs the annulment steps in one transaction,
    # "compensating" commits each step on its own
    ANNULMENT_MODE = os.environ.get("ANNULMENT_MODE", "atomic")

    # actor id (as string) -> capability names; "*" grants everything
    CAPABILITIES: dict[str, list[str]] = {}

    # Collaborator overrides, mostly for tests; None installs the default
    # (SystemClock, the CERTIFIER_BACKEND certifier, ConfigPermissionChecker)
    CLOCK = None
    CERTIFIER = None
    PERMISSION_CHECKER = None
