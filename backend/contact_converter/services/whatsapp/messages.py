"""
WhatsApp Message Builder

Formats the converter's replies. Every builder returns a plain dict:

    {"type": "text", "body": "..."}
    {"type": "media", "body": "...", "media_url": "https://..."}

The webhook turns these into TwiML.

WhatsApp truncates inbound bodies at 1600 characters and outbound text
at 4096.
"""

from typing import Any, Dict, List, Optional

from ..format_router import supported_formats
from .session import MAX_STAGED_CONTACTS


OK = "✅"
WARN = "⚠️"
THINK = "🤔"

MAX_BODY_CHARS = 4096
MAX_FAILURE_REASONS = 3


class MessageBuilder:
    """Build formatted WhatsApp messages."""

    @staticmethod
    def text(body: str, **kwargs) -> Dict[str, Any]:
        """Build a simple text message."""
        return {"type": "text", "body": body[:MAX_BODY_CHARS], **kwargs}

    @staticmethod
    def media(body: str, media_url: str, **kwargs) -> Dict[str, Any]:
        """Build a text message with one media attachment."""
        return {"type": "media", "body": body[:MAX_BODY_CHARS], "media_url": media_url, **kwargs}

    # =========================================================================
    # Onboarding and help
    # =========================================================================

    @staticmethod
    def welcome() -> Dict[str, Any]:
        return MessageBuilder.text(
            "👋 Send me contact cards, a CSV or Excel file, a PDF, or just paste "
            "names and numbers, and I'll turn them into a spreadsheet for you!\n\n"
            "Type *help* to see what I can read."
        )

    @staticmethod
    def help() -> Dict[str, Any]:
        catalogue = supported_formats()["formats"]
        lines = [f"• *{f['name']}* ({', '.join(f['extensions'])}): {f['description']}" for f in catalogue]
        return MessageBuilder.text(
            "📇 *Contact Converter*\n\n"
            "I can read:\n" + "\n".join(lines) + "\n\n"
            "*Commands*\n"
            "• *1* or *export*: convert what you've sent\n"
            "• *2* or *more*: keep adding contacts\n"
            "• *status*: how many contacts are waiting\n"
            "• *reset*: start over\n\n"
            "If the same number appears more than once I'll ask you which name to keep. "
            "When a number appears three or more times, only the first two entries are offered."
        )

    # =========================================================================
    # Staging
    # =========================================================================

    @staticmethod
    def staged(
        total: int,
        added: Optional[int] = None,
        failures: Optional[List[str]] = None,
        dropped: int = 0,
    ) -> Dict[str, Any]:
        """
        Running count after an upload, with the convert / add-more prompt.

        Args:
            total: Contacts now staged
            added: Contacts added by this message, if known
            failures: Short per-attachment failure reasons
            dropped: Contacts left out because the staging list is full
        """
        parts = []
        if failures:
            shown = failures[:MAX_FAILURE_REASONS]
            more = len(failures) - len(shown)
            reason_text = "\n".join(f"• {reason}" for reason in shown)
            if more > 0:
                reason_text += f"\n• …and {more} more"
            parts.append(f"{WARN} Some files couldn't be read:\n{reason_text}")
        if added is not None and added != total:
            parts.append(f"➕ Added *{added}* contacts.")
        if dropped > 0:
            parts.append(
                f"{WARN} I can hold {MAX_STAGED_CONTACTS} contacts at a time, so *{dropped}* were left out. "
                "Convert these first, then send the rest."
            )
        parts.append(f"📊 I've stashed *{total}* contacts so far.")
        parts.append("1️⃣ Convert them now  |  2️⃣ Send more")
        return MessageBuilder.text("\n\n".join(parts))

    @staticmethod
    def nothing_found(failures: Optional[List[str]] = None) -> Dict[str, Any]:
        body = f"{THINK} I couldn't find any contacts in that."
        if failures:
            body += "\n" + "\n".join(f"• {reason}" for reason in failures[:MAX_FAILURE_REASONS])
        body += "\n\nTry a .vcf contact card, a CSV/Excel file, or a list of names and numbers."
        return MessageBuilder.text(body)

    @staticmethod
    def send_more() -> Dict[str, Any]:
        return MessageBuilder.text("👍 Send the next card or list when ready.")

    @staticmethod
    def status(total: int) -> Dict[str, Any]:
        if total == 0:
            return MessageBuilder.text(f"{THINK} Nothing staged yet! Send some contacts first.")
        return MessageBuilder.text(f"📊 *{total}* contacts waiting.\n\n1️⃣ Convert them now  |  2️⃣ Send more")

    @staticmethod
    def reset_done() -> Dict[str, Any]:
        return MessageBuilder.text("🧹 Cleared. Send new contacts whenever you're ready.")

    @staticmethod
    def truncation_advice(found: int) -> Dict[str, Any]:
        return MessageBuilder.text(
            f"{WARN} *Your list looks cut off.* WhatsApp limits messages to 1600 characters, "
            f"so I could only read {found} contacts from it.\n\n"
            "Please send the rest in smaller pieces (about 10-15 contacts per message). "
            "I'll combine everything into one file."
        )

    # =========================================================================
    # Duplicate resolution
    # =========================================================================

    @staticmethod
    def duplicate_prompt(group: List[Any], position: int, total_groups: int) -> Dict[str, Any]:
        """
        Ask the user which of two entries sharing a number to keep.

        Args:
            group: Contacts sharing one number (only the first two are offered)
            position: 0-based index of this group
            total_groups: Number of duplicate groups in the dialogue
        """
        first, second = group[0], group[1]
        counter = f" ({position + 1}/{total_groups})" if total_groups > 1 else ""
        return MessageBuilder.text(
            f"{WARN} Same number{counter}: {first.mobile}\n\n"
            f"1) {first.name or 'No Name'}\n"
            f"2) {second.name or 'No Name'}\n\n"
            "Pick 1 or 2."
        )

    # =========================================================================
    # Delivery
    # =========================================================================

    @staticmethod
    def download_link(url: str, count: int, ttl_minutes: int, password: Optional[str] = None) -> Dict[str, Any]:
        body = (
            f"{OK} *Conversion complete!* {count} contacts.\n\n"
            f"📥 Download: {url}\n"
            f"⏳ Link expires in {ttl_minutes} minutes."
        )
        if password:
            body += f"\n🔑 Password: *{password}*"
        return MessageBuilder.text(body)

    @staticmethod
    def file_attached(url: str, count: int) -> Dict[str, Any]:
        return MessageBuilder.media(f"{OK} *Conversion complete!* Sending {count} contacts…", url)

    @staticmethod
    def template_sent(count: int) -> Dict[str, Any]:
        """Empty synchronous reply; the template message goes out of band."""
        return {"type": "none", "body": "", "count": count}

    # =========================================================================
    # Errors
    # =========================================================================

    @staticmethod
    def error(detail: Optional[str] = None) -> Dict[str, Any]:
        body = f"{WARN} Oops, something broke. Try again."
        if detail:
            body += f"\n\n({detail})"
        return MessageBuilder.text(body)
