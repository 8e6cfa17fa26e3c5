"""
Type Classifier

Deterministic mapping from a column's declared scalar type name to the
wrapper type used to access it from client scripts. The platform exposes two
client-side object models, so the ``global`` and ``scoped`` render modes each
have their own mapping and their own set of types whose underlying scalar type
must be documented explicitly.
"""

from dataclasses import dataclass
from enum import Enum


class RenderMode(Enum):
    """Client-side object model that declarations are generated for."""

    GLOBAL = "global"
    SCOPED = "scoped"

    @classmethod
    def from_string(cls, value: str | None) -> "RenderMode":
        """Parse a mode name or its one-letter abbreviation."""
        normalized = (value or "").strip().lower()
        if normalized in ("", "g", "global"):
            return cls.GLOBAL
        if normalized in ("s", "scoped"):
            return cls.SCOPED
        raise ValueError(f"Invalid render mode: {value!r} (expected 'global' or 'scoped')")


class WrapperCategory(Enum):
    """Wrapper types a column can be exposed through."""

    GENERIC = "generic"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    REFERENCE = "reference"
    DATE_TIME = "date_time"
    JOURNAL = "journal"
    GLIDE_OBJECT = "glide_object"
    SCRIPT = "script"
    SYS_CLASS_NAME = "sys_class_name"
    DOCUMENT_ID = "document_id"
    DOMAIN_ID = "domain_id"
    RELATED_TAGS = "related_tags"
    TRANSLATED_FIELD = "translated_field"
    DOCUMENTATION = "documentation"
    CONDITIONS = "conditions"
    VARIABLES = "variables"
    PASSWORD = "password"
    PASSWORD2 = "password2"
    USER_IMAGE = "user_image"
    TRANSLATED_TEXT = "translated_text"
    TRANSLATED_HTML = "translated_html"
    COUNTER = "counter"
    CURRENCY = "currency"
    PRICE = "price"
    SHORT_FIELD_NAME = "short_field_name"
    SHORT_TABLE_NAME = "short_table_name"
    AUDIO = "audio"
    REPLICATION_PAYLOAD = "replication_payload"
    BREAKDOWN_ELEMENT = "breakdown_element"
    COMPRESSED = "compressed"
    URL = "url"
    WORKFLOW_CONDITIONS = "workflow_conditions"
    DATA_OBJECT = "data_object"
    FULL_UTF8 = "full_utf8"
    ICON = "icon"
    GLIDE_VAR = "glide_var"
    INTERNAL_TYPE = "internal_type"
    SIMPLE_NAME_VALUE = "simple_name_value"
    NAME_VALUE = "name_value"
    SOURCE_NAME = "source_name"
    SOURCE_TABLE = "source_table"
    WIKI_TEXT = "wiki_text"
    WORKFLOW = "workflow"
    PHONE_NUMBER = "phone_number"
    IP_ADDRESS = "ip_address"


@dataclass(frozen=True)
class Classification:
    """Result of classifying a column's scalar type."""

    category: WrapperCategory
    explicit: bool = False


# ---------------------------------------------------------------------------
# Type vocabulary families
# ---------------------------------------------------------------------------

NUMERIC_TYPES = ("integer", "decimal", "float", "percent_complete", "order_index", "longint")

DATE_TIME_TYPES = (
    "glide_date_time",
    "glide_date",
    "glide_time",
    "timer",
    "glide_duration",
    "glide_utc_time",
    "due_date",
    "glide_precise_time",
    "calendar_date_time",
)

JOURNAL_TYPES = (
    "journal",
    "glide_list",
    "glide_action_list",
    "user_input",
    "journal_input",
    "journal_list",
)

# Types the global object model exposes through GlideElementGlideObject
GLIDE_OBJECT_TYPES = DATE_TIME_TYPES + (
    "user_input",
    "journal_input",
    "journal_list",
    "html",
    "glide_list",
    "journal",
    "glide_action_list",
    "date",
    "day_of_week",
    "month_of_year",
    "week_of_month",
)


def _family(names: tuple[str, ...], category: WrapperCategory) -> dict[str, WrapperCategory]:
    return {name: category for name in names}


GLOBAL_CATEGORIES: dict[str, WrapperCategory] = {
    "boolean": WrapperCategory.BOOLEAN,
    **_family(NUMERIC_TYPES, WrapperCategory.NUMERIC),
    "sys_class_name": WrapperCategory.SYS_CLASS_NAME,
    "document_id": WrapperCategory.DOCUMENT_ID,
    "domain_id": WrapperCategory.DOMAIN_ID,
    "related_tags": WrapperCategory.RELATED_TAGS,
    "translated_field": WrapperCategory.TRANSLATED_FIELD,
    "documentation_field": WrapperCategory.DOCUMENTATION,
    "script": WrapperCategory.SCRIPT,
    "script_plain": WrapperCategory.SCRIPT,
    "xml": WrapperCategory.SCRIPT,
    "conditions": WrapperCategory.CONDITIONS,
    "variables": WrapperCategory.VARIABLES,
    "password": WrapperCategory.PASSWORD,
    "password2": WrapperCategory.PASSWORD2,
    "user_image": WrapperCategory.USER_IMAGE,
    "translated_text": WrapperCategory.TRANSLATED_TEXT,
    "translated_html": WrapperCategory.TRANSLATED_HTML,
    "counter": WrapperCategory.COUNTER,
    "currency": WrapperCategory.CURRENCY,
    "price": WrapperCategory.PRICE,
    "short_field_name": WrapperCategory.SHORT_FIELD_NAME,
    "short_table_name": WrapperCategory.SHORT_TABLE_NAME,
    "audio": WrapperCategory.AUDIO,
    "replication_payload": WrapperCategory.REPLICATION_PAYLOAD,
    "breakdown_element": WrapperCategory.BREAKDOWN_ELEMENT,
    "compressed": WrapperCategory.COMPRESSED,
    "url": WrapperCategory.URL,
    "template_value": WrapperCategory.WORKFLOW_CONDITIONS,
    "data_object": WrapperCategory.DATA_OBJECT,
    "string_full_utf8": WrapperCategory.FULL_UTF8,
    "icon": WrapperCategory.ICON,
    "glide_var": WrapperCategory.GLIDE_VAR,
    "internal_type": WrapperCategory.INTERNAL_TYPE,
    "simple_name_values": WrapperCategory.SIMPLE_NAME_VALUE,
    "name_values": WrapperCategory.NAME_VALUE,
    "source_name": WrapperCategory.SOURCE_NAME,
    "source_table": WrapperCategory.SOURCE_TABLE,
    "reference": WrapperCategory.REFERENCE,
    "wiki_text": WrapperCategory.WIKI_TEXT,
    "workflow": WrapperCategory.WORKFLOW,
    **_family(GLIDE_OBJECT_TYPES, WrapperCategory.GLIDE_OBJECT),
    "phone_number": WrapperCategory.PHONE_NUMBER,
    "caller_phone_number": WrapperCategory.PHONE_NUMBER,
    "phone_number_e164": WrapperCategory.PHONE_NUMBER,
    "ip_addr": WrapperCategory.IP_ADDRESS,
}

GLOBAL_EXPLICIT_TYPES = frozenset({
    "decimal",
    "float",
    "percent_complete",
    "order_index",
    "longint",
    "script_plain",
    "xml",
    "glide_date",
    "glide_time",
    "timer",
    "glide_duration",
    "glide_utc_time",
    "due_date",
    "glide_precise_time",
    "calendar_date_time",
    "user_input",
    "journal_input",
    "journal_list",
    "html",
    "glide_list",
    "journal",
    "glide_action_list",
    "date",
    "day_of_week",
    "month_of_year",
    "week_of_month",
    "caller_phone_number",
    "phone_number_e164",
})

SCOPED_CATEGORIES: dict[str, WrapperCategory] = {
    **_family(JOURNAL_TYPES, WrapperCategory.JOURNAL),
    **_family(DATE_TIME_TYPES, WrapperCategory.DATE_TIME),
    "reference": WrapperCategory.REFERENCE,
    "currency2": WrapperCategory.REFERENCE,
    "domain_id": WrapperCategory.REFERENCE,
    "document_id": WrapperCategory.REFERENCE,
    "source_id": WrapperCategory.REFERENCE,
}

SCOPED_EXPLICIT_TYPES = frozenset({
    "glide_list",
    "glide_action_list",
    "user_input",
    "journal_input",
    "journal_list",
    "glide_date",
    "glide_time",
    "timer",
    "glide_duration",
    "glide_utc_time",
    "due_date",
    "glide_precise_time",
    "calendar_date_time",
    "currency2",
    "domain_id",
    "document_id",
    "source_id",
})

CATEGORY_TABLES: dict[RenderMode, dict[str, WrapperCategory]] = {
    RenderMode.GLOBAL: GLOBAL_CATEGORIES,
    RenderMode.SCOPED: SCOPED_CATEGORIES,
}

EXPLICIT_TYPES: dict[RenderMode, frozenset[str]] = {
    RenderMode.GLOBAL: GLOBAL_EXPLICIT_TYPES,
    RenderMode.SCOPED: SCOPED_EXPLICIT_TYPES,
}

# ---------------------------------------------------------------------------
# Emitted wrapper type names
# ---------------------------------------------------------------------------

TS_NAME_GLIDE_ELEMENT = "GlideElement"
TS_NAME_GLIDE_ELEMENT_REFERENCE = "GlideElementReference"

SCOPED_TYPE_NAMES: dict[WrapperCategory, str] = {
    WrapperCategory.JOURNAL: "JournalGlideElement",
    WrapperCategory.DATE_TIME: "GlideDateTimeElement",
    WrapperCategory.REFERENCE: TS_NAME_GLIDE_ELEMENT_REFERENCE,
}

GLOBAL_TYPE_NAMES: dict[WrapperCategory, str] = {
    WrapperCategory.BOOLEAN: "GlideElementBoolean",
    WrapperCategory.NUMERIC: "GlideElementNumeric",
    WrapperCategory.REFERENCE: TS_NAME_GLIDE_ELEMENT_REFERENCE,
    WrapperCategory.GLIDE_OBJECT: "GlideElementGlideObject",
    WrapperCategory.SCRIPT: "GlideElementScript",
    WrapperCategory.SYS_CLASS_NAME: "GlideElementSysClassName",
    WrapperCategory.DOCUMENT_ID: "GlideElementDocumentId",
    WrapperCategory.DOMAIN_ID: "GlideElementDomainId",
    WrapperCategory.RELATED_TAGS: "GlideElementRelatedTags",
    WrapperCategory.TRANSLATED_FIELD: "GlideElementTranslatedField",
    WrapperCategory.DOCUMENTATION: "GlideElementDocumentation",
    WrapperCategory.CONDITIONS: "GlideElementConditions",
    WrapperCategory.VARIABLES: "GlideElementVariables",
    WrapperCategory.PASSWORD: "GlideElementPassword",
    WrapperCategory.PASSWORD2: "GlideElementPassword2",
    WrapperCategory.USER_IMAGE: "GlideElementUserImage",
    WrapperCategory.TRANSLATED_TEXT: "GlideElementTranslatedText",
    WrapperCategory.TRANSLATED_HTML: "GlideElementTranslatedHTML",
    WrapperCategory.COUNTER: "GlideElementCounter",
    WrapperCategory.CURRENCY: "GlideElementCurrency",
    WrapperCategory.PRICE: "GlideElementPrice",
    WrapperCategory.SHORT_FIELD_NAME: "GlideElementShortFieldName",
    WrapperCategory.SHORT_TABLE_NAME: "GlideElementShortTableName",
    WrapperCategory.AUDIO: "GlideElementAudio",
    WrapperCategory.REPLICATION_PAYLOAD: "GlideElementReplicationPayload",
    WrapperCategory.BREAKDOWN_ELEMENT: "GlideElementBreakdownElement",
    WrapperCategory.COMPRESSED: "GlideElementCompressed",
    WrapperCategory.URL: "GlideElementURL",
    WrapperCategory.WORKFLOW_CONDITIONS: "GlideElementWorkflowConditions",
    WrapperCategory.DATA_OBJECT: "GlideElementDataObject",
    WrapperCategory.FULL_UTF8: "GlideElementFullUTF8",
    WrapperCategory.ICON: "GlideElementIcon",
    WrapperCategory.GLIDE_VAR: "GlideElementGlideVar",
    WrapperCategory.INTERNAL_TYPE: "GlideElementInternalType",
    WrapperCategory.SIMPLE_NAME_VALUE: "GlideElementSimpleNameValue",
    WrapperCategory.NAME_VALUE: "GlideElementNameValue",
    WrapperCategory.SOURCE_NAME: "GlideElementSourceName",
    WrapperCategory.SOURCE_TABLE: "GlideElementSourceTable",
    WrapperCategory.WIKI_TEXT: "GlideElementWikiText",
    WrapperCategory.WORKFLOW: "GlideElementWorkflow",
    WrapperCategory.PHONE_NUMBER: "GlideElementPhoneNumber",
    WrapperCategory.IP_ADDRESS: "GlideElementIPAddress",
}

TYPE_NAMES: dict[RenderMode, dict[WrapperCategory, str]] = {
    RenderMode.GLOBAL: GLOBAL_TYPE_NAMES,
    RenderMode.SCOPED: SCOPED_TYPE_NAMES,
}


def classify(type_name: str | None, mode: RenderMode) -> Classification:
    """
    Classify a scalar type name for a render mode.

    Unknown or missing type names fall back to the generic wrapper.

    Example:
        >>> classify("decimal", RenderMode.GLOBAL)
        Classification(category=<WrapperCategory.NUMERIC: 'numeric'>, explicit=True)
    """
    key = (type_name or "").strip().lower()
    category = CATEGORY_TABLES[mode].get(key, WrapperCategory.GENERIC)
    return Classification(category=category, explicit=key in EXPLICIT_TYPES[mode])


def wrapper_type_name(category: WrapperCategory, mode: RenderMode) -> str:
    """TypeScript interface name emitted for a wrapper category."""
    return TYPE_NAMES[mode].get(category, TS_NAME_GLIDE_ELEMENT)


class TypeClassifier:
    """
    Classifier bound to one render mode.

    Example:
        >>> classifier = TypeClassifier(RenderMode.SCOPED)
        >>> classifier.classify("journal").category
        <WrapperCategory.JOURNAL: 'journal'>
        >>> classifier.type_name_for("journal")
        'JournalGlideElement'
    """

    def __init__(self, mode: RenderMode = RenderMode.GLOBAL):
        self.mode = mode

    def classify(self, type_name: str | None) -> Classification:
        return classify(type_name, self.mode)

    def type_name_for(self, type_name: str | None) -> str:
        return wrapper_type_name(self.classify(type_name).category, self.mode)

    def is_explicit(self, type_name: str | None) -> bool:
        return self.classify(type_name).explicit
