"""
Pydantic models describing what a supervised command is made of: the command
descriptor loaded from a manifest and the bundle of streams it talks through.
"""
from typing import Any, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class ParameterInput(BaseModel):
    """
    A parameter whose value comes from the user.
    `parameter` is a template in which the first unescaped `$` is replaced by `answer`.
    """
    model_config = ConfigDict(frozen=True)

    parameter: str = Field(..., description="Template holding the '$' placeholder")
    answer: Optional[str] = Field(None, description="Value given by the user")

    def answered(self, answer: str) -> "ParameterInput":
        return self.model_copy(update={"answer": answer})


CommandParameter = Union[str, ParameterInput]
parameters_adapter = TypeAdapter(Tuple[CommandParameter, ...])


class CommandDescriptor(BaseModel):
    """Immutable declaration of a runnable command."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    command: str = Field(..., min_length=1, description="Executable or command to run")
    parameters: Tuple[CommandParameter, ...] = Field((), description="Literal or input parameters")
    description: str = Field("", description="Human readable description")
    name_alias: Optional[str] = Field(None, alias="nameAlias", description="Unique alias of the command")

    @field_validator("command")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be blank")
        return value


def _check_stream(value: Any, method: str) -> Any:
    if not callable(getattr(value, method, None)):
        raise ValueError(f"expected an object with a '{method}' method, got {type(value).__name__}")
    return value


class RunCommandStreams(BaseModel):
    """
    The channels a command is bridged to. They are borrowed: the caller owns them
    and must keep them open for as long as the process runs.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    read_input: Any
    write_output: Any
    write_error: Any

    @field_validator("read_input")
    @classmethod
    def _readable(cls, value: Any) -> Any:
        if callable(getattr(value, "read1", None)):
            return value
        return _check_stream(value, "readline")

    @field_validator("write_output", "write_error")
    @classmethod
    def _writable(cls, value: Any) -> Any:
        return _check_stream(value, "write")
