"""Identity bridge and link-type translation between the application and MSPDI."""

from project_interchange.core.models import LinkType, WireLinkType

# ExtendedAttribute FieldIDs that carry durable ids across a round-trip.
TASK_EXTERNAL_ID_FIELD = 188743731  # Text1
ASSIGNMENT_EXTERNAL_ID_FIELD = 188743734  # Text2

EXTERNAL_ID_FIELDS = (
    (TASK_EXTERNAL_ID_FIELD, "Text1", "ExternalTaskID"),
    (ASSIGNMENT_EXTERNAL_ID_FIELD, "Text2", "ExternalAssignmentID"),
)

APP_TO_WIRE: dict[LinkType, WireLinkType] = {
    LinkType.START_TO_START: WireLinkType.START_TO_START,
    LinkType.START_TO_FINISH: WireLinkType.START_TO_FINISH,
    LinkType.FINISH_TO_START: WireLinkType.FINISH_TO_START,
    LinkType.FINISH_TO_FINISH: WireLinkType.FINISH_TO_FINISH,
}

WIRE_TO_APP: dict[WireLinkType, LinkType] = {
    WireLinkType.FINISH_TO_FINISH: LinkType.FINISH_TO_FINISH,
    WireLinkType.FINISH_TO_START: LinkType.FINISH_TO_START,
    WireLinkType.START_TO_FINISH: LinkType.START_TO_FINISH,
    WireLinkType.START_TO_START: LinkType.START_TO_START,
}

LINK_TYPE_CODES: dict[LinkType, str] = {
    LinkType.START_TO_START: "SS",
    LinkType.START_TO_FINISH: "SF",
    LinkType.FINISH_TO_START: "FS",
    LinkType.FINISH_TO_FINISH: "FF",
}


def to_wire_link_type(value) -> WireLinkType:
    """Translate an application link type; unknown values fall back to FS."""
    try:
        return APP_TO_WIRE[LinkType(int(value))]
    except (TypeError, ValueError):
        return WireLinkType.FINISH_TO_START


def to_app_link_type(value) -> LinkType:
    """Translate a wire link type; unknown values fall back to FS."""
    try:
        return WIRE_TO_APP[WireLinkType(int(value))]
    except (TypeError, ValueError):
        return LinkType.FINISH_TO_START


def normalize_external_id(value) -> str | None:
    """Return a non-empty identity tag or None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
