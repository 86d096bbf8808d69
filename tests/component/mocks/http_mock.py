"""
SMS Provider Mock for Component Testing

Replaces the Mitto HTTP client. Responses are scripted per call; by default
every send succeeds with a fresh provider message id.
"""
import uuid
from typing import Any, Dict, List, Optional, Union

from microservices.campaign_service.protocols import ProviderError

Scripted = Union[Dict[str, Any], Exception]


class MockSmsProvider:
    """Mock implementation of SmsProviderProtocol"""

    def __init__(self):
        self.sent: List[Dict[str, str]] = []
        self._script: List[Scripted] = []
        self._default: Optional[Scripted] = None

    def script(self, *outcomes: Scripted) -> None:
        """Queue outcomes for the next calls: a response dict or an exception"""
        self._script.extend(outcomes)

    def always(self, outcome: Optional[Scripted]) -> None:
        """Outcome of every call once the script is exhausted"""
        self._default = outcome

    def fail_with(self, status_code: Optional[int], message: str = "provider error") -> None:
        self.always(ProviderError(message, status_code=status_code))

    async def send_sms(self, destination: str, text: str, sender: str) -> Dict[str, Any]:
        self.sent.append({"destination": destination, "text": text, "sender": sender})

        outcome = self._script.pop(0) if self._script else self._default
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        return {"provider_message_id": f"mitto-{uuid.uuid4().hex[:20]}", "raw": {}}
