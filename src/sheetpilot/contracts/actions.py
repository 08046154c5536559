"""Typed action models accepted by the executor.

Each action is ``{"action": <NAME>, "params": {...}}``.  Parameter names are
camelCase on the wire and snake_case in Python.  Shape checks (required
fields, blank strings, enumerated tokens) happen here; semantic checks
(column exists, address well-formed) belong to the executor.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from sheetpilot.contracts.common import ActionValidationError


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("must not be an empty string")
    return v


def _present(v: Any) -> Any:
    if v is None or (isinstance(v, str) and not v.strip()):
        raise ValueError("is required")
    return v


def _lower(v: Any) -> Any:
    return v.strip().lower() if isinstance(v, str) else v


def _upper(v: Any) -> Any:
    return v.strip().upper() if isinstance(v, str) else v


Text = Annotated[str, AfterValidator(_not_blank)]
Key = Annotated[Any, AfterValidator(_present)]
Operation = Annotated[Literal["SET", "+", "-", "*", "/"], BeforeValidator(_upper)]


class ActionParams(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddColumnParams(ActionParams):
    column_name: Text
    formula_template: Text = Field(validation_alias=AliasChoices("formulaTemplate", "formula", "formula_template"))


class HighlightRowsParams(ActionParams):
    condition: Text
    color: str | None = None


class SortDataParams(ActionParams):
    column: Text
    order: Annotated[Literal["asc", "desc"], BeforeValidator(_lower)] = "asc"


class UpdateRowValuesParams(ActionParams):
    filter_column: Text
    filter_value: Key
    operation: Operation
    value: Any
    target_column: Text | None = None


class UpdateColumnValuesParams(ActionParams):
    column: Text
    operation: Operation
    value: Any


class UpdateKeyValueParams(ActionParams):
    key_column: Text
    key_value: Key
    value_column: Text | None = None
    new_value: Any


class SetCellParams(ActionParams):
    address: Text = Field(validation_alias=AliasChoices("address", "cell"))
    value: Any = None


class FindAndReplaceParams(ActionParams):
    find_value: Key
    replace_value: Any = None
    column: Text | None = None


class AddColumn(BaseModel):
    action: Literal["ADD_COLUMN"] = "ADD_COLUMN"
    params: AddColumnParams


class HighlightRows(BaseModel):
    action: Literal["HIGHLIGHT_ROWS"] = "HIGHLIGHT_ROWS"
    params: HighlightRowsParams


class SortData(BaseModel):
    action: Literal["SORT_DATA"] = "SORT_DATA"
    params: SortDataParams


class UpdateRowValues(BaseModel):
    action: Literal["UPDATE_ROW_VALUES"] = "UPDATE_ROW_VALUES"
    params: UpdateRowValuesParams


class UpdateColumnValues(BaseModel):
    action: Literal["UPDATE_COLUMN_VALUES"] = "UPDATE_COLUMN_VALUES"
    params: UpdateColumnValuesParams


class UpdateKeyValue(BaseModel):
    action: Literal["UPDATE_KEY_VALUE"] = "UPDATE_KEY_VALUE"
    params: UpdateKeyValueParams


class SetCell(BaseModel):
    action: Literal["SET_CELL"] = "SET_CELL"
    params: SetCellParams


class FindAndReplace(BaseModel):
    action: Literal["FIND_AND_REPLACE"] = "FIND_AND_REPLACE"
    params: FindAndReplaceParams


Action = Annotated[
    Union[
        AddColumn,
        HighlightRows,
        SortData,
        UpdateRowValues,
        UpdateColumnValues,
        UpdateKeyValue,
        SetCell,
        FindAndReplace,
    ],
    Field(discriminator="action"),
]

ACTION_NAMES: frozenset[str] = frozenset({
    "ADD_COLUMN", "HIGHLIGHT_ROWS", "SORT_DATA", "UPDATE_ROW_VALUES",
    "UPDATE_COLUMN_VALUES", "UPDATE_KEY_VALUE", "SET_CELL", "FIND_AND_REPLACE",
})

_ADAPTER: TypeAdapter[Any] = TypeAdapter(Action)


def parse_action(data: Any, *, index: int = 0) -> Any:
    """Validate one ``{action, params}`` object into a typed action."""
    if not isinstance(data, dict):
        raise ActionValidationError("Action must be an object.", details={"index": index})
    name = data.get("action")
    if not isinstance(name, str) or not name.strip():
        raise ActionValidationError('Missing required field "action".', details={"index": index})
    if name not in ACTION_NAMES:
        raise ActionValidationError(
            f'Unsupported action "{name}". Supported: {", ".join(sorted(ACTION_NAMES))}',
            details={"index": index, "action": name},
        )
    if not isinstance(data.get("params"), dict):
        raise ActionValidationError(
            'Missing required field "params".', details={"index": index, "action": name}
        )
    try:
        return _ADAPTER.validate_python(data)
    except ValidationError as e:
        issues = [
            {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        first = issues[0] if issues else {"loc": "", "msg": "invalid"}
        raise ActionValidationError(
            f"Invalid parameters for {name}: {first['loc']} {first['msg']}",
            details={"index": index, "action": name, "issues": issues},
        ) from e


def parse_actions(payload: Any) -> list[Any]:
    """Accept a single action, a list of actions, or ``{"actions": [...]}``."""
    if isinstance(payload, dict) and "actions" in payload:
        items = payload["actions"]
        if not isinstance(items, list):
            raise ActionValidationError('"actions" must be an array.')
    elif isinstance(payload, list):
        items = payload
    else:
        items = [payload]
    if not items:
        raise ActionValidationError("Action list is empty.")
    return [parse_action(item, index=i) for i, item in enumerate(items)]
