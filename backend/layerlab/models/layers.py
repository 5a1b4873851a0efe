from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from layerlab.errors import ModelValidationError, format_validation_errors

Activation = Literal["relu", "sigmoid", "softmax", "tanh"]
PositiveStrictInt = Annotated[int, Field(strict=True, gt=0)]
Pair = Tuple[PositiveStrictInt, PositiveStrictInt]
ImageShape = Tuple[PositiveStrictInt, PositiveStrictInt, PositiveStrictInt]

class BaseLayer(BaseModel):
    """Fields shared by every layer kind"""
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    input_shape: Optional[List[PositiveStrictInt]] = Field(None, alias="inputShape", min_length=1)

    def to_json(self):
        """Serialize back to the camelCase shape the client submitted"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

class DenseLayer(BaseLayer):
    type: Literal["dense"]
    units: PositiveStrictInt
    activation: Activation

class Conv2DLayer(BaseLayer):
    type: Literal["conv2d"]
    filters: PositiveStrictInt
    kernel_size: Pair = Field(..., alias="kernelSize")
    activation: Activation
    input_shape: Optional[ImageShape] = Field(None, alias="inputShape")

class MaxPooling2DLayer(BaseLayer):
    type: Literal["maxPooling2d"]
    pool_size: Pair = Field(..., alias="poolSize")
    input_shape: Optional[ImageShape] = Field(None, alias="inputShape")

class FlattenLayer(BaseLayer):
    type: Literal["flatten"]

class DropoutLayer(BaseLayer):
    type: Literal["dropout"]
    rate: float = Field(..., strict=True, ge=0.0, le=1.0)

LayerSpec = Annotated[
    Union[DenseLayer, Conv2DLayer, MaxPooling2DLayer, FlattenLayer, DropoutLayer],
    Field(discriminator="type"),
]

def misplaced_input_shapes(raw_layers: Any) -> List[int]:
    """
    Indexes of layers after the first that declare an inputShape

    Works on the submitted list before any layer is validated, so a
    misplaced inputShape is reported together with the other errors.
    """
    if not isinstance(raw_layers, list):
        return []
    return [
        index for index, layer in enumerate(raw_layers)
        if index > 0 and isinstance(layer, dict)
        and (layer.get("inputShape") is not None or layer.get("input_shape") is not None)
    ]

def _placement_problems(raw_layers: Any) -> List[dict]:
    return [
        {
            "field": f"layers.{index}.inputShape",
            "message": "inputShape is only allowed on the first layer",
            "type": "input_shape_position",
        }
        for index in misplaced_input_shapes(raw_layers)
    ]

class ModelCreate(BaseModel):
    """Request model for creating a model definition; build it with parse_model_definition"""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    layers: List[LayerSpec] = Field(..., min_length=1)

_layer_list_adapter = TypeAdapter(Annotated[List[LayerSpec], Field(min_length=1)])

def parse_model_definition(raw: Any) -> ModelCreate:
    """
    Validate a raw model definition (name, description, layers)

    Raises:
        ModelValidationError: listing every offending field
    """
    problems = _placement_problems(raw.get("layers") if isinstance(raw, dict) else None)
    try:
        definition = ModelCreate.model_validate(raw)
    except ValidationError as e:
        problems = format_validation_errors(e.errors()) + problems
        definition = None

    if problems:
        raise ModelValidationError("Invalid model definition", problems)
    return definition

def validate_layers(raw: Any) -> List[BaseLayer]:
    """
    Validate a raw layer list on its own

    Raises:
        ModelValidationError: listing every offending field
    """
    problems = _placement_problems(raw)
    try:
        layers = _layer_list_adapter.validate_python(raw)
    except ValidationError as e:
        errors = format_validation_errors(e.errors())
        for problem in errors:
            problem["field"] = f"layers.{problem['field']}" if problem["field"] != "body" else "layers"
        problems = errors + problems
        layers = None

    if problems:
        raise ModelValidationError("Invalid layer list", problems)
    return layers
