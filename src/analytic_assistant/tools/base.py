from __future__ import annotations

from typing import Any, ClassVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from analytic_assistant.errors import ExternalResourceError, ToolValidationError
from analytic_assistant.tool import ToolContext

STORE_NOT_CONFIGURED = "Store API is not configured. Please guide the user to the settings page."


def tool_failure(error: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": error, **extra}


def format_validation_errors(ex: ValidationError) -> list[str]:
    messages: list[str] = []
    for err in ex.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "(root)"
        messages.append(f"{location}: {err.get('msg', 'invalid value')}")
    return messages


class ValidatedTool:
    """Base for tools whose arguments are described by a pydantic model.

    Subclasses set ``name``, ``description`` and ``params_model`` and
    implement ``run``. Validation failures and exceptions raised by ``run``
    are turned into structured failure payloads so the model can correct its
    call within the same turn.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    params_model: ClassVar[type[BaseModel]]

    @property
    def input_schema(self) -> dict[str, Any]:
        schema = self.params_model.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    def parse_arguments(self, tool_input: dict[str, Any] | None) -> BaseModel:
        try:
            return self.params_model.model_validate(tool_input or {})
        except ValidationError as ex:
            raise ToolValidationError(self.name, format_validation_errors(ex)) from ex

    async def execute(self, tool_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        try:
            params = self.parse_arguments(tool_input)
        except ToolValidationError as ex:
            logger.warning(f"{self.name}: rejected arguments {tool_input!r}: {ex.errors}")
            return tool_failure(
                f"Invalid arguments for '{self.name}'. Fix the parameters and call the tool again.",
                validation_errors=ex.errors,
            )

        logger.info(f"Executing tool {self.name} with {params.model_dump(exclude_none=True)}")
        try:
            result = await self.run(params, context)
        except ExternalResourceError as ex:
            logger.error(f"{self.name} failed: {ex}")
            return tool_failure(
                f"The '{self.name}' tool failed. Reason: {ex}",
                hint=ex.hint.value,
            )
        except Exception as ex:
            logger.error(f"{self.name} failed: {type(ex).__name__}: {ex}")
            return tool_failure(f"The '{self.name}' tool failed. Reason: {ex}")

        logger.info(f"Tool {self.name} finished (success={result.get('success')})")
        return result

    async def run(self, params: Any, context: ToolContext) -> dict[str, Any]:
        raise NotImplementedError
