"""Stammdaten für Belege: Absender (Rezensent) und Leistungsempfänger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True, slots=True)
class SenderIdentity:
    name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    vat_id: str = ""
    small_business: bool = False


@dataclass(frozen=True, slots=True)
class RecipientIdentity:
    company_name: str = "Amazon EU S.à r.l."
    address_line1: str = "38 avenue John F. Kennedy"
    address_line2: str = "L-1855 Luxemburg"
    country: str = "LU"
    vat_id: str = "LU20260743"


_SENDER_LABELS = {
    "name": "Name/Firma",
    "address_line1": "Straße und Hausnummer",
    "address_line2": "PLZ und Ort",
    "vat_id": "USt-IdNr.",
}


def missing_sender_fields(sender: SenderIdentity) -> List[str]:
    """Liefert die deutschen Bezeichnungen fehlender Pflichtangaben."""

    return [
        label
        for attr, label in _SENDER_LABELS.items()
        if not str(getattr(sender, attr) or "").strip()
    ]


@dataclass(frozen=True, slots=True)
class BelegSettings:
    sender: SenderIdentity = field(default_factory=SenderIdentity)
    recipient: RecipientIdentity = field(default_factory=RecipientIdentity)

    @property
    def sender_complete(self) -> bool:
        return not missing_sender_fields(self.sender)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userData": {
                "nameOrCompany": self.sender.name,
                "addressLine1": self.sender.address_line1,
                "addressLine2": self.sender.address_line2,
                "vatId": self.sender.vat_id,
                "isKleinunternehmer": self.sender.small_business,
            },
            "recipientData": {
                "companyName": self.recipient.company_name,
                "addressLine1": self.recipient.address_line1,
                "addressLine2": self.recipient.address_line2,
                "country": self.recipient.country,
                "vatId": self.recipient.vat_id,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "BelegSettings":
        data = data or {}
        user = data.get("userData") or {}
        recipient = data.get("recipientData") or {}
        default_recipient = RecipientIdentity()
        return cls(
            sender=SenderIdentity(
                name=user.get("nameOrCompany", ""),
                address_line1=user.get("addressLine1", ""),
                address_line2=user.get("addressLine2", ""),
                vat_id=user.get("vatId", ""),
                small_business=bool(user.get("isKleinunternehmer", False)),
            ),
            recipient=RecipientIdentity(
                company_name=recipient.get("companyName", default_recipient.company_name),
                address_line1=recipient.get("addressLine1", default_recipient.address_line1),
                address_line2=recipient.get("addressLine2", default_recipient.address_line2),
                country=recipient.get("country", default_recipient.country),
                vat_id=recipient.get("vatId", default_recipient.vat_id),
            ),
        )
