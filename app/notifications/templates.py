"""Message composition using Jinja2.

Each template id maps to ``message_templates/<template_id>.j2``, a file that
defines three blocks: ``subject`` and ``body`` for e-mail, and ``sms`` for the
short text message. Rendering uses StrictUndefined so a missing variable is a
template error rather than an empty string.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, TemplateNotFound

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

REQUIRED_BLOCKS = ("subject", "body", "sms")


@dataclass(frozen=True)
class ComposedMessage:
    """Rendered content for one (template, recipient) pair."""

    template_id: str
    subject: str
    body: str
    sms_text: str


class MessageComposer:
    """Renders ``(template_id, data)`` into e-mail and SMS content.

    Templates are cached by the Jinja2 environment for reuse across calls.
    """

    def __init__(self, template_dir: str = "message_templates"):
        """Initialize the Jinja2 environment.

        Args:
            template_dir: Directory name within the app.notifications package
        """
        self.env = Environment(
            loader=PackageLoader("app.notifications", template_dir),
            autoescape=False,  # plain-text e-mail and SMS
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
        logger.debug(f"Initialized MessageComposer with templates from {template_dir}")

    def compose(self, template_id: str, data: Dict[str, Any]) -> ComposedMessage:
        """Render all three blocks of ``template_id``.

        Raises:
            NotificationTemplateError: If the template is unknown, lacks a block,
                or references an undefined variable
        """
        try:
            template = self.env.get_template(f"{template_id}.j2")
            missing = [name for name in REQUIRED_BLOCKS if name not in template.blocks]
            if missing:
                raise NotificationTemplateError(
                    f"Template '{template_id}' is missing block(s): {', '.join(missing)}"
                )

            context = template.new_context(dict(data))
            rendered = {
                name: "".join(template.blocks[name](context)) for name in REQUIRED_BLOCKS
            }
        except NotificationTemplateError:
            raise
        except TemplateNotFound as e:
            raise NotificationTemplateError(f"Unknown message template '{template_id}'") from e
        except TemplateError as e:
            error_msg = f"Template '{template_id}' failed to render: {e}"
            logger.error(error_msg)
            raise NotificationTemplateError(error_msg) from e

        return ComposedMessage(
            template_id=template_id,
            subject=_single_line(rendered["subject"]),
            body=rendered["body"].strip() + "\n",
            sms_text=_single_line(rendered["sms"]),
        )


def _single_line(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()
