"""Translate collaborator events into award requests.

Learning events carry their own ``xp_reward``; community events are worth a
fixed, configured number of points.
"""

from __future__ import annotations

from dataclasses import dataclass

from rada.config import Settings
from rada.db.models import SourceType


class MalformedEvent(ValueError):
    """Event payload is missing a field or carries an unusable value."""


@dataclass(frozen=True)
class EventRule:
    source_type: SourceType
    reference_field: str
    # None: amount comes from the event's xp_reward. Otherwise a Settings attribute.
    points_setting: str | None = None


EVENT_RULES: dict[str, EventRule] = {
    "learning:lesson_completed": EventRule(SourceType.LESSON, "lesson_id"),
    "learning:quiz_passed": EventRule(SourceType.QUIZ, "quiz_id"),
    "learning:module_completed": EventRule(SourceType.MODULE, "module_id"),
    "community:post_created": EventRule(SourceType.DISCUSSION_POST, "post_id", "points_discussion_post"),
    "community:reply_posted": EventRule(SourceType.DISCUSSION_REPLY, "reply_id", "points_discussion_reply"),
    "community:like_given": EventRule(SourceType.LIKE, "post_id", "points_like"),
}

STREAMS = list(EVENT_RULES)


@dataclass(frozen=True)
class AwardRequest:
    user: int | str
    source_type: SourceType
    reference_id: str
    amount: int
    description: str | None = None


def translate_event(stream: str, data: dict, settings: Settings) -> AwardRequest:
    """Build the award request for one stream entry. Raises MalformedEvent."""
    rule = EVENT_RULES.get(stream)
    if rule is None:
        raise MalformedEvent(f"No award rule for stream {stream}")

    user = data.get("user")
    if user is None or user == "":
        raise MalformedEvent("Event has no user")

    reference = data.get(rule.reference_field)
    if reference is None or str(reference).strip() == "":
        raise MalformedEvent(f"Event has no {rule.reference_field}")

    if rule.points_setting is not None:
        amount = getattr(settings, rule.points_setting)
    else:
        try:
            amount = int(data.get("xp_reward", 0))
        except (TypeError, ValueError):
            raise MalformedEvent(f"Invalid xp_reward: {data.get('xp_reward')!r}") from None
    if amount <= 0:
        raise MalformedEvent(f"Non-positive amount {amount} for {stream}")

    title = data.get("title")
    description = f"{rule.source_type.value}: {title}" if title else None
    return AwardRequest(
        user=user,
        source_type=rule.source_type,
        reference_id=str(reference).strip(),
        amount=amount,
        description=description,
    )
