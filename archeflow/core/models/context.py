"""Run-time choice values stored in the Choice Tree."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class _ValueBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    def as_text(self) -> str:
        raise NotImplementedError


class TextValue(_ValueBase):
    kind: Literal["text"] = "text"
    text: str

    def as_text(self) -> str:
        return self.text


class OptionValue(_ValueBase):
    kind: Literal["option"] = "option"
    enabled: bool

    def as_text(self) -> str:
        return "true" if self.enabled else "false"


class SelectValue(_ValueBase):
    kind: Literal["select"] = "select"
    selected: tuple[str, ...] = ()
    multiple: bool = False

    def as_text(self) -> str:
        return ",".join(self.selected)


ContextValue = Annotated[
    Union[TextValue, OptionValue, SelectValue], Field(discriminator="kind")
]


class ContextNode(BaseModel):
    """A (path, value) pair in the Choice Tree."""

    path: str
    value: ContextValue
    external: bool = False
    read_only: bool = False
