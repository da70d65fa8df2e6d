"""Error taxonomy for synap.

Every error carries a stable ``code`` so callers can branch on it without
matching message text.
"""


class SynapError(Exception):
    """Base class for all synap errors."""

    code = "SYNAP_ERROR"

    def to_dict(self) -> dict[str, str | bool]:
        return {"success": False, "error": str(self), "code": self.code}


class ValidationError(SynapError, ValueError):
    """A value was outside what the operation accepts."""

    code = "VALIDATION_ERROR"


class InvalidType(ValidationError):
    code = "INVALID_TYPE"

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid type: {value}")
        self.value = value


class InvalidStatus(ValidationError):
    code = "INVALID_STATUS"

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid status: {value}")
        self.value = value


class InvalidDueDate(ValidationError):
    code = "INVALID_DUE_DATE"

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid due date: {value}")
        self.value = value


class InvalidPriority(ValidationError):
    code = "INVALID_PRIORITY"

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid priority: {value} (expected 1, 2 or 3)")
        self.value = value


class InvalidParent(ValidationError):
    """Assigning the parent would make an entry its own ancestor."""

    code = "INVALID_PARENT"


class InvalidArgument(ValidationError):
    code = "INVALID_ARGUMENT"


class PreferencesValidationError(ValidationError):
    code = "INVALID_PREFERENCES"


class InvalidConfigKey(ValidationError):
    code = "INVALID_KEY"

    def __init__(self, key: str, valid_keys: list[str]) -> None:
        super().__init__(f"Unknown config key: {key} (valid keys: {', '.join(valid_keys)})")
        self.key = key


class InvalidConfigValue(ValidationError):
    code = "VALIDATION_ERROR"


class EntryNotFound(SynapError, LookupError):
    code = "ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Entry not found: {entry_id}")
        self.entry_id = entry_id


class AmbiguousId(SynapError, LookupError):
    code = "AMBIGUOUS_ID"

    def __init__(self, entry_id: str, candidates: list[str]) -> None:
        super().__init__(f"Ambiguous id {entry_id}: matches {', '.join(candidates)}")
        self.entry_id = entry_id
        self.candidates = candidates
