import logging
from dataclasses import dataclass
from datetime import timezone
from email.utils import parsedate_to_datetime

from stampwallet.core.security import tokens_match
from stampwallet.core.timestamps import parse_datetime, to_iso, utc_now
from stampwallet.domain.errors import AuthenticationError
from stampwallet.repositories.card_design import CardDesignRepository
from stampwallet.repositories.device import DeviceRepository
from stampwallet.repositories.wallet_pass import WalletPassRepository
from stampwallet.services.pass_generator import PassGenerator, PassPackage, etag_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdatedPasses:
    serial_numbers: list[str]
    last_updated: int


def parse_update_tag(value: str | None) -> int:
    """Client-supplied passesUpdatedSince; anything malformed means 'from the start'."""
    if not value:
        return 0
    try:
        return max(0, int(value.strip()))
    except ValueError:
        return 0


class DeviceUpdateRegistry:
    """Apple Wallet web service operations.

    Every pass-scoped call authenticates with the pass's token first; an
    unknown pass and a wrong token raise the same AuthenticationError.
    """

    def __init__(self, pass_generator: PassGenerator | None = None, clock=utc_now):
        self.pass_generator = pass_generator
        self.clock = clock

    def authenticate(self, pass_id: str, token: str | None) -> dict:
        wallet_pass = WalletPassRepository.get_by_id(pass_id)
        expected = wallet_pass.get("authentication_token") if wallet_pass else None
        if not tokens_match(expected, token):
            raise AuthenticationError("Invalid authentication")
        return wallet_pass

    def register_device(self, device_id: str, pass_id: str, token: str | None, push_token: str) -> bool:
        """Register a device for pass updates; True when newly created."""
        self.authenticate(pass_id, token)
        created = DeviceRepository.register(device_id, pass_id, push_token, to_iso(self.clock()))
        logger.info(
            f"Device {device_id[:20]}... {'registered' if created else 're-registered'} for pass {pass_id[:8]}..."
        )
        return created

    def unregister_device(self, device_id: str, pass_id: str, token: str | None) -> bool:
        self.authenticate(pass_id, token)
        removed = DeviceRepository.unregister(device_id, pass_id)
        logger.info(f"Device {device_id[:20]}... unregistered from pass {pass_id[:8]}... (existed={removed})")
        return removed

    def passes_updated_since(self, device_id: str, since: str | None) -> UpdatedPasses | None:
        """
        Serial numbers of this device's passes changed after `since`.

        Returns:
            UpdatedPasses with the largest update tag among the device's
            passes, or None when the device has nothing new
        """
        pass_ids = DeviceRepository.get_pass_ids_for_device(device_id)
        if not pass_ids:
            return None

        DeviceRepository.touch_last_checked(device_id, to_iso(self.clock()))

        since_tag = parse_update_tag(since)
        updated = WalletPassRepository.list_updated_since(pass_ids, since_tag)
        if not updated:
            return None

        return UpdatedPasses(
            serial_numbers=[row["id"] for row in updated],
            last_updated=max(row["update_tag"] for row in updated),
        )

    def latest_pass(
        self,
        pass_id: str,
        token: str | None,
        if_none_match: str | None = None,
        if_modified_since: str | None = None,
    ) -> PassPackage | None:
        """
        Build the current pass package.

        Returns:
            The package, or None when the client's copy is current (ETag
            match, or not modified since the given HTTP date)
        """
        wallet_pass = self.authenticate(pass_id, token)

        last_modified = parse_datetime(wallet_pass.get("last_updated_at"))
        if if_modified_since and last_modified and not if_none_match:
            try:
                client_date = parsedate_to_datetime(if_modified_since)
                if client_date.tzinfo is None:
                    client_date = client_date.replace(tzinfo=timezone.utc)
                # HTTP dates have second precision
                if last_modified.replace(microsecond=0) <= client_date:
                    return None
            except (ValueError, TypeError):
                pass  # Invalid header format, continue with full response

        design = CardDesignRepository.get_for_offer(wallet_pass["offer_id"])
        package = self.pass_generator.generate_pass(wallet_pass, design)

        if etag_matches(if_none_match, package.etag):
            return None
        return package

