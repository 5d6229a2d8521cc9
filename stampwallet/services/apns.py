import asyncio
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# APNs reasons meaning the token will never work again
INVALID_TOKEN_REASONS = {
    "BadDeviceToken",
    "Unregistered",
    "DeviceTokenNotForTopic",
}


@dataclass
class PushOutcome:
    push_token: str
    delivered: bool
    failure_reason: str | None = None
    token_invalid: bool = False


@dataclass
class DispatchReport:
    delivered: int = 0
    failed: int = 0
    outcomes: list[PushOutcome] = field(default_factory=list)

    @property
    def invalid_tokens(self) -> list[str]:
        return [outcome.push_token for outcome in self.outcomes if outcome.token_invalid]


class APNsClient:
    """Apple Push Notification service client for Wallet pass updates.

    Wallet pushes carry an empty payload; the device then asks the web
    service which passes changed. Single-token failures are reported in the
    outcome, never raised.
    """

    def __init__(
        self,
        cert_path: str,
        pass_type_id: str,
        use_sandbox: bool = True,
    ):
        self.cert_path = cert_path
        self.pass_type_id = pass_type_id
        self.use_sandbox = use_sandbox
        self._client = None

    def _get_client(self):
        if self._client is None:
            from aioapns import APNs
            self._client = APNs(
                client_cert=self.cert_path,
                use_sandbox=self.use_sandbox,
            )
        return self._client

    async def notify(self, push_token: str) -> PushOutcome:
        """Send a pass update push to one device."""
        try:
            from aioapns import NotificationRequest

            request = NotificationRequest(
                device_token=push_token,
                message={},
                apns_topic=self.pass_type_id,
            )

            response = await self._get_client().send_notification(request)

            if response.is_successful:
                logger.info(f"Push sent to {push_token[:20]}...")
                return PushOutcome(push_token=push_token, delivered=True)

            reason = response.description or str(response.status)
            invalid = reason in INVALID_TOKEN_REASONS or str(response.status) == "410"
            logger.warning(f"Push failed for {push_token[:20]}...: {response.status} - {response.description}")
            return PushOutcome(
                push_token=push_token,
                delivered=False,
                failure_reason=reason,
                token_invalid=invalid,
            )

        except Exception as e:
            logger.error(f"Push error for {push_token[:20]}...: {e}")
            return PushOutcome(push_token=push_token, delivered=False, failure_reason=str(e))

    async def notify_all(self, push_tokens: list[str]) -> DispatchReport:
        """Send pass update pushes to many devices concurrently."""
        report = DispatchReport()
        if not push_tokens:
            return report

        outcomes = await asyncio.gather(*(self.notify(token) for token in push_tokens))
        for outcome in outcomes:
            report.outcomes.append(outcome)
            if outcome.delivered:
                report.delivered += 1
            else:
                report.failed += 1

        if report.invalid_tokens:
            logger.warning(f"{len(report.invalid_tokens)} push token(s) rejected as invalid")
        return report


def create_apns_client() -> APNsClient:
    """Factory function to create APNsClient from settings."""
    from stampwallet.core.config import settings

    return APNsClient(
        cert_path=settings.apns_cert_path,
        pass_type_id=settings.apple_pass_type_id,
        use_sandbox=settings.apns_use_sandbox,
    )
