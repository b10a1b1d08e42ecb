"""SMS delivery engine: phone normalization, segmentation and per-segment retry."""

import re
import time
from typing import Callable, List, Optional

from app.config.models import SMSConfig
from app.logging import get_logger

from .models import DeliveryDiagnostic, InvalidPhoneNumberError, SMSDeliveryError, SMSDeliveryResult
from .sms_client import ProviderResponse, SMSProvider

logger = get_logger(__name__, component="sms")

MIN_PHONE_DIGITS = 8
MAX_E164_DIGITS = 15

_MARKER_RE = re.compile(r"^\(\d+/\d+\) ")
_TOKEN_RE = re.compile(r"\S+\s*|\s+")

UCS2_SEGMENT_LENGTH = 70

GSM7_BASIC = (
    "@£$¥èéùìòÇ\nØø\rÅåΔ_ΦΓΛΩΠΨΣΘΞÆæßÉ !\"#¤%&'()*+,-./0123456789:;<=>?"
    "¡ABCDEFGHIJKLMNOPQRSTUVWXYZÄÖÑÜ§¿abcdefghijklmnopqrstuvwxyzäöñüà"
)
GSM7_EXTENSION = "\f^{}\\[~]|€"
_GSM7_CHARS = frozenset(GSM7_BASIC + GSM7_EXTENSION)

_TRANSLITERATION = str.maketrans(
    {
        "č": "c", "ć": "c", "Č": "C", "Ć": "C",
        "š": "s", "Š": "S", "ž": "z", "Ž": "Z",
        "đ": "dj", "Đ": "Dj",
        "‘": "'", "’": "'", "‚": "'", "‛": "'",
        "“": '"', "”": '"', "„": '"', "‟": '"',
        "–": "-", "—": "-", "…": "...", "\u00a0": " ",
    }
)


def normalize_phone(raw: Optional[str], country_code: str = "382") -> str:
    """Normalize a phone number to E.164 (``+<digits>``).

    Examples (country code 382):
        "067 123 456"      -> "+38267123456"
        "00382 67 123 456" -> "+38267123456"
        "38267123456"      -> "+38267123456"

    Raises:
        InvalidPhoneNumberError: If fewer than 8 digits remain or the result is too long
    """
    if raw is None or not str(raw).strip():
        raise InvalidPhoneNumberError("Phone number is empty")

    text = str(raw).strip()
    digits = re.sub(r"\D", "", text)

    if len(digits) < MIN_PHONE_DIGITS:
        raise InvalidPhoneNumberError(
            f"Phone number '{raw}' has {len(digits)} digits, at least {MIN_PHONE_DIGITS} required"
        )

    if text.startswith("+"):
        canonical = digits
    elif digits.startswith("00"):
        canonical = digits[2:]
    elif digits.startswith(country_code):
        canonical = digits
    elif digits.startswith("0"):
        canonical = country_code + digits[1:]
    else:
        canonical = country_code + digits

    if len(canonical) > MAX_E164_DIGITS:
        raise InvalidPhoneNumberError(f"Phone number '{raw}' is longer than {MAX_E164_DIGITS} digits")

    return f"+{canonical}"


def _marker(index: int, total: int) -> str:
    return f"({index}/{total}) "


def is_gsm7(text: str) -> bool:
    """True if every character of ``text`` is in the GSM 03.38 alphabet (basic or extension)."""
    return all(ch in _GSM7_CHARS for ch in text)


def gsm7_length(text: str) -> int:
    """Septets ``text`` occupies; extension characters take an escape plus the character."""
    return sum(2 if ch in GSM7_EXTENSION else 1 for ch in text)


def transliterate(text: str) -> str:
    """Replace local letters and typographic punctuation with GSM-7 equivalents.

    "Vaš dio je stigao – hvala…" -> "Vas dio je stigao - hvala..."
    """
    return text.translate(_TRANSLITERATION)


def _fitting_prefix(token: str, capacity: int, measure: Callable[[str], int]) -> str:
    end = min(len(token), capacity)
    while measure(token[:end]) > capacity:
        end -= 1
    return token[:end]


def _pack(text: str, capacity: int, measure: Callable[[str], int] = len) -> List[str]:
    """Greedily pack whitespace-delimited tokens into chunks measuring at most ``capacity``."""
    chunks: List[str] = []
    current = ""
    used = 0
    for token in _TOKEN_RE.findall(text):
        size = measure(token)
        if used + size <= capacity:
            current += token
            used += size
            continue
        if current:
            chunks.append(current)
            current, used = "", 0
        while size > capacity:
            head = _fitting_prefix(token, capacity, measure)
            chunks.append(head)
            token = token[len(head):]
            size = measure(token)
        current, used = token, size
    if current:
        chunks.append(current)
    return chunks


def split_message(text: str, segment_length: int = 160) -> List[str]:
    """Split ``text`` into provider segments.

    GSM-7 text gets ``segment_length`` septets per segment, with extension
    characters such as ``€`` or ``[`` counting twice. Text containing any
    other character is sent as UCS-2 by gateways, so its segments are capped
    at 70 characters.

    Text that fits is returned unchanged as a single segment. Longer text is
    split on word boundaries and each segment is prefixed with ``(i/n) ``;
    the prefix counts toward the segment length. Removing the prefixes and
    joining the segments yields the original text.
    """
    if is_gsm7(text):
        measure, limit = gsm7_length, segment_length
    else:
        measure, limit = len, min(segment_length, UCS2_SEGMENT_LENGTH)

    if measure(text) <= limit:
        return [text]

    total = 2
    while True:
        capacity = limit - len(_marker(total, total))
        if capacity < 2:
            raise ValueError(f"segment_length {segment_length} is too small for {total} segments")
        chunks = _pack(text, capacity, measure)
        if len(chunks) <= total:
            count = len(chunks)
            return [_marker(index, count) + chunk for index, chunk in enumerate(chunks, start=1)]
        total = len(chunks)


def strip_segment_marker(segment: str) -> str:
    """Remove a leading ``(i/n) `` marker, if present."""
    return _MARKER_RE.sub("", segment, count=1)


class SMSDeliveryEngine:
    """Delivers SMS text through an SMSProvider.

    Each segment is an independent provider call with its own retry budget.
    The send succeeds only if every segment is delivered.
    """

    def __init__(
        self,
        provider: SMSProvider,
        sms_config: Optional[SMSConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.provider = provider
        self.sms_config = sms_config or SMSConfig()
        self.sleep = sleep

    def send(self, phone: Optional[str], text: str) -> SMSDeliveryResult:
        """Normalize, segment and deliver ``text``; never raises for delivery problems."""
        try:
            canonical = normalize_phone(phone, self.sms_config.country_code)
        except InvalidPhoneNumberError as e:
            logger.warning(
                f"Rejected SMS to {phone!r}: {e}",
                extra={"event": "sms.send.rejected", "diagnostic": e.diagnostic.value},
            )
            return SMSDeliveryResult(
                phone=phone or "",
                succeeded=False,
                attempts=0,
                error=str(e),
                diagnostic=e.diagnostic,
            )

        if self.sms_config.transliterate:
            text = transliterate(text)
        segments = split_message(text, self.sms_config.segment_length)
        result = SMSDeliveryResult(phone=canonical, succeeded=False, attempts=0, segments=len(segments))
        last_response: Optional[ProviderResponse] = None

        for index, segment in enumerate(segments, start=1):
            response, attempts = self._send_segment(canonical, segment, index, len(segments))
            result.attempts += attempts
            if response.ok:
                if response.provider_message_id:
                    result.message_ids.append(response.provider_message_id)
            else:
                result.failed_segments.append(index)
                last_response = response

        if not result.failed_segments:
            result.succeeded = True
            logger.info(
                f"SMS sent to {canonical} ({len(segments)} segment(s), {result.attempts} call(s))",
                extra={"event": "sms.send.success", "segments": len(segments), "gsm7": is_gsm7(text)},
            )
            return result

        failed = ", ".join(str(i) for i in result.failed_segments)
        result.error = f"Segment(s) {failed} of {len(segments)} failed: {last_response.error}"
        result.diagnostic = last_response.diagnostic or DeliveryDiagnostic.UNKNOWN
        logger.error(
            f"SMS to {canonical} failed: {result.error}",
            extra={
                "event": "sms.send.failure",
                "failed_segments": result.failed_segments,
                "diagnostic": result.diagnostic.value,
            },
        )
        return result

    def _send_segment(self, phone: str, segment: str, index: int, total: int):
        max_attempts = self.sms_config.max_attempts
        response = ProviderResponse(ok=False, error="not attempted")

        for attempt in range(1, max_attempts + 1):
            try:
                response = self.provider.send(phone, segment)
            except SMSDeliveryError as e:
                response = ProviderResponse(ok=False, error=str(e), diagnostic=e.diagnostic)

            if response.ok:
                return response, attempt

            if attempt < max_attempts:
                logger.warning(
                    f"SMS segment {index}/{total} to {phone} failed (attempt {attempt}/{max_attempts}): "
                    f"{response.error}",
                    extra={"event": "sms.segment.retry", "segment": index, "attempt": attempt},
                )
                self.sleep(self.sms_config.retry_delay_seconds)

        return response, max_attempts
