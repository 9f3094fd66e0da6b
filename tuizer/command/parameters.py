import re
from typing import List, Sequence

from tuizer.command.descriptor import CommandParameter, ParameterInput
from tuizer.command.errors import ValidationError

# A '$' that is not escaped with a backslash
PLACEHOLDER = re.compile(r"(?<!\\)\$")
ESCAPED_PLACEHOLDER = re.compile(r"\\\$")


def needs_answer(template: str) -> bool:
    """A template needs an answer unless all of its markers are escaped."""
    return bool(PLACEHOLDER.search(template)) or not ESCAPED_PLACEHOLDER.search(template)


def resolve_parameter(param: CommandParameter) -> str:
    """
    Resolves a single parameter into the literal argument passed to the process.

    Literal strings pass through. For an input parameter the first unescaped `$`
    in the template is replaced by the answer; a template holding only escaped
    markers is kept as is, and a template without any marker resolves to the
    answer alone.

    :raises ValidationError: If the answer is needed but was never given.
    """
    if isinstance(param, str):
        return param

    template = param.parameter
    if not needs_answer(template):
        return template

    if param.answer is None:
        raise ValidationError(
            "Parameter requires an answer before the command can run",
            data={"parameter": template},
        )

    if PLACEHOLDER.search(template):
        # A callable replacement keeps backslashes in the answer literal.
        return PLACEHOLDER.sub(lambda _: param.answer, template, count=1)
    return param.answer


def resolve_command_parameters(params: Sequence[CommandParameter]) -> List[str]:
    """Turns a descriptor's parameter list into the argument vector, keeping the order."""
    return [resolve_parameter(param) for param in params]


def pending_inputs(params: Sequence[CommandParameter]) -> List[ParameterInput]:
    """Returns the input parameters that still wait for an answer."""
    return [
        param for param in params
        if isinstance(param, ParameterInput) and param.answer is None and needs_answer(param.parameter)
    ]
