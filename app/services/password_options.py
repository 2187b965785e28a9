"""Typed generation options embedded verbatim in the rotation payload.

The rotation service never interprets these values; it validates their types
and passes them through. ``OPTION_EFFECTS`` documents what the downstream
password generator does with each one, for display next to the options form.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field


OPTION_EFFECTS: Dict[str, str] = {
    "length": "Number of characters in the generated password.",
    "lowercase": "Include lowercase letters.",
    "uppercase": "Include uppercase letters.",
    "numbers": "Include digits.",
    "symbols": "Include symbols from symbolsToUse.",
    "excludeSimilarCharacters": "Skip look-alike characters such as i, l, 1, o, 0.",
    "exclude": "Characters that must never appear in the password.",
    "strict": "Require at least one character from every enabled pool.",
    "symbolsToUse": "The symbol pool used when symbols is enabled.",
}


class PasswordOptions(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)

    length: int = Field(16, description=OPTION_EFFECTS["length"])
    lowercase: bool = Field(True, description=OPTION_EFFECTS["lowercase"])
    uppercase: bool = Field(True, description=OPTION_EFFECTS["uppercase"])
    numbers: bool = Field(True, description=OPTION_EFFECTS["numbers"])
    symbols: bool = Field(True, description=OPTION_EFFECTS["symbols"])
    excludeSimilarCharacters: bool = Field(True, description=OPTION_EFFECTS["excludeSimilarCharacters"])
    exclude: str = Field("Il1O0", description=OPTION_EFFECTS["exclude"])
    strict: bool = Field(True, description=OPTION_EFFECTS["strict"])
    symbolsToUse: str = Field("!@#$%^&*-_+=:", description=OPTION_EFFECTS["symbolsToUse"])

    def with_updates(self, changes: Mapping[str, Any]) -> "PasswordOptions":
        """Return a validated copy with ``changes`` applied; raises ValidationError on bad keys or types."""
        merged = self.model_dump()
        merged.update(changes)
        return PasswordOptions.model_validate(merged)

    @classmethod
    def describe(cls) -> Dict[str, Dict[str, Any]]:
        defaults = cls().model_dump()
        return {
            name: {"default": defaults[name], "type": type(defaults[name]).__name__, "effect": effect}
            for name, effect in OPTION_EFFECTS.items()
        }
