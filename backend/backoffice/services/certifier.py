# Overview: Fiscal certifier adapters (FEL signer); the only outbound network dependency.

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from datetime import datetime
from xml.sax.saxutils import escape

import httpx

from backoffice.time_utils import utcnow


class CertifierError(Exception):
    """Raised when the certifier cannot sign a document (transport, timeout or rejection)."""

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        self.error_code = error_code


@dataclass(frozen=True)
class CertifiedDocument:
    uuid: str
    serie: str
    number: str
    signed_document: str
    pdf_ref: str | None = None
    authorized_at: datetime | None = None


class SimulatedCertifier:
    """
    Local stand-in for the tax authority's certifier.

    Issues a random authorization UUID, serie FACT and an 8-digit number,
    and wraps the invoice in a minimal DTE XML envelope.
    """

    serie = "FACT"

    def sign(self, payload: dict) -> CertifiedDocument:
        doc_uuid = str(uuid.uuid4())
        number = str(random.randint(1, 999_999)).zfill(8)
        issued_at = utcnow()
        return CertifiedDocument(
            uuid=doc_uuid,
            serie=self.serie,
            number=number,
            signed_document=build_dte_xml(payload, doc_uuid, self.serie, number, issued_at),
            pdf_ref=None,
            authorized_at=issued_at,
        )


class HttpCertifier:
    """
    Certifier reached over HTTPS.

    POSTs the invoice payload as JSON to {base_url}/dte/certify and expects
    {"uuid", "serie", "number", "xml", "pdf_url"?}. Any transport error,
    timeout, non-2xx status or malformed body raises CertifierError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        api_secret: str = "",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self.transport,
            headers={
                "X-Api-Key": self.api_key,
                "X-Api-Secret": self.api_secret,
                "Accept": "application/json",
            },
        )

    def sign(self, payload: dict) -> CertifiedDocument:
        try:
            with self._client() as client:
                response = client.post("/dte/certify", json=payload)
        except httpx.TimeoutException as exc:
            raise CertifierError(f"Certifier timed out after {self.timeout}s", error_code="timeout") from exc
        except httpx.HTTPError as exc:
            raise CertifierError(f"Certifier unreachable: {exc}", error_code="transport") from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise CertifierError(
                body.get("message") or f"Certifier rejected the document (HTTP {response.status_code})",
                error_code=str(body.get("code") or response.status_code),
            )

        try:
            data = response.json()
            return CertifiedDocument(
                uuid=data["uuid"],
                serie=data["serie"],
                number=str(data["number"]),
                signed_document=data["xml"],
                pdf_ref=data.get("pdf_url"),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise CertifierError("Certifier returned a malformed response", error_code="malformed") from exc


def build_dte_xml(payload: dict, doc_uuid: str, serie: str, number: str, issued_at: datetime) -> str:
    seller = escape(str(payload.get("seller", {}).get("name", "")))
    buyer = escape(str(payload.get("buyer", {}).get("name", "")))
    total = escape(str(payload.get("totals", {}).get("total", "")))
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<dte:GTDocumento xmlns:dte="http://www.sat.gob.gt/dte/fel/0.2.0">'
        "<dte:SAT><dte:DTE>"
        f"<dte:NumeroAutorizacion>{doc_uuid}</dte:NumeroAutorizacion>"
        f"<dte:Serie>{serie}</dte:Serie>"
        f"<dte:Numero>{number}</dte:Numero>"
        f"<dte:FechaHoraEmision>{issued_at.isoformat()}</dte:FechaHoraEmision>"
        f"<dte:Emisor>{seller}</dte:Emisor>"
        f"<dte:Receptor>{buyer}</dte:Receptor>"
        f"<dte:Total>{total}</dte:Total>"
        "</dte:DTE></dte:SAT>"
        "</dte:GTDocumento>"
    )


def certifier_from_config(config) -> SimulatedCertifier | HttpCertifier:
    backend = config.get("CERTIFIER_BACKEND", "simulated")
    if backend == "simulated":
        return SimulatedCertifier()
    if backend == "http":
        return HttpCertifier(
            base_url=config["FEL_API_URL"],
            api_key=config.get("FEL_API_KEY", ""),
            api_secret=config.get("FEL_API_SECRET", ""),
            timeout=float(config.get("FEL_API_TIMEOUT", 30)),
        )
    raise ValueError(f"Unknown CERTIFIER_BACKEND {backend!r}")
