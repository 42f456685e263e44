"""Resolve OCR-extracted identifiers to clients and catalog obligations.

Not finding a match is a normal outcome: results carry ``found`` and a
human-readable ``reason`` instead of raising.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.client_repository import ClientRepository
from app.repositories.obligation_repository import ObligationRepository
from app.services.matching.identifiers import digits_only, format_cpf, format_nit_nis, is_valid_cpf
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

# Codes whose catalog entries are commonly registered by name rather than code
LEGACY_FISCAL_CODES = {
    "0190": "Carnê Leão",
    "1163": "1163",
    "1007": "1007",
}

_IDENTIFIERS = {
    "darf": ("tax_id", "CPF", format_cpf),
    "gps": ("social_insurance_id", "NIT/NIS", format_nit_nis),
}


@dataclass
class ClientMatch:
    found: bool
    client_id: Optional[UUID] = None
    client_name: Optional[str] = None
    client_code: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["client_id"] = str(self.client_id) if self.client_id else None
        return data


@dataclass
class ObligationMatch:
    found: bool
    obligation_id: Optional[UUID] = None
    obligation_name: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["obligation_id"] = str(self.obligation_id) if self.obligation_id else None
        return data


class Matcher:
    """Read-only lookups within one organization."""

    def __init__(self, session: AsyncSession):
        self.clients = ClientRepository(session)
        self.obligations = ObligationRepository(session)

    async def match_client(
        self, org_id: UUID, document_type: str, identifier: Optional[str]
    ) -> ClientMatch:
        """Find the active client owning ``identifier``.

        DARF slips carry the CPF, GPS slips the NIT/NIS. Both the digits-only
        and the punctuated spelling stored in the directory are accepted.
        """
        spec = _IDENTIFIERS.get((document_type or "").lower())
        if spec is None:
            return ClientMatch(found=False, reason="Unknown document type, cannot identify client")

        field, label, formatter = spec
        digits = digits_only(identifier)
        if not digits:
            return ClientMatch(found=False, reason=f"{label} not found on document")
        if len(digits) != 11:
            return ClientMatch(found=False, reason=f"{label} {identifier} has an invalid length")
        if field == "tax_id" and not is_valid_cpf(digits):
            return ClientMatch(found=False, reason=f"{label} {formatter(digits)} has invalid check digits")

        candidates = {digits, formatter(digits)}
        clients = await self.clients.find_active_by_identifier(org_id, field, sorted(candidates))

        if not clients:
            return ClientMatch(found=False, reason=f"No active client with {label} {formatter(digits)}")
        if len(clients) > 1:
            LOGGER.warning(
                f"Ambiguous {label} match",
                extra={"org_id": str(org_id), "matches": [str(c.id) for c in clients]},
            )
            return ClientMatch(
                found=False,
                reason=f"{label} {formatter(digits)} matches {len(clients)} active clients",
            )

        client = clients[0]
        return ClientMatch(
            found=True,
            client_id=client.id,
            client_name=client.name,
            client_code=client.code,
        )

    async def match_obligation(self, org_id: UUID, fiscal_code: Optional[str]) -> ObligationMatch:
        """Find the catalog obligation for a fiscal code.

        Direct ``fiscal_code`` lookup first, then the legacy code-to-name table.
        """
        code = (fiscal_code or "").strip()
        if not code:
            return ObligationMatch(found=False, reason="Fiscal code not found on document")

        codes = [code]
        digits = digits_only(code)
        if digits and digits.zfill(4) != code:
            codes.append(digits.zfill(4))

        for candidate in codes:
            obligations = await self.obligations.find_by_fiscal_code(org_id, candidate)
            if len(obligations) == 1:
                return self._found(obligations[0])
            if len(obligations) > 1:
                return ObligationMatch(
                    found=False,
                    reason=f"Fiscal code {candidate} matches {len(obligations)} obligations",
                )

        for candidate in codes:
            name_fragment = LEGACY_FISCAL_CODES.get(candidate)
            if not name_fragment:
                continue
            obligations = await self.obligations.search_by_name(org_id, name_fragment)
            if len(obligations) == 1:
                return self._found(obligations[0])
            if len(obligations) > 1:
                return ObligationMatch(
                    found=False,
                    reason=f"Fiscal code {candidate} matches {len(obligations)} obligations by name",
                )

        return ObligationMatch(found=False, reason=f"No obligation registered for fiscal code {code}")

    @staticmethod
    def _found(obligation) -> ObligationMatch:
        return ObligationMatch(found=True, obligation_id=obligation.id, obligation_name=obligation.name)
