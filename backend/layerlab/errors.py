from typing import Any, Dict, List, Optional


class LayerLabError(Exception):
    """
    Base class for domain errors.

    Every subclass carries a stable machine-checkable ``code`` and the HTTP
    status it maps to, so handlers can render it without inspecting the type.
    """

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ModelValidationError(LayerLabError):
    """Raised when a model definition or training config is malformed."""

    code = "validation_error"
    status_code = 400


class GraphBuildError(LayerLabError):
    """Raised when a valid layer list cannot be assembled into a graph."""

    code = "graph_build_error"
    status_code = 400


class NotFoundError(LayerLabError):
    """Raised when a model or training set id does not exist."""

    code = "not_found"
    status_code = 404


class InvalidTransitionError(LayerLabError):
    """Raised when a model status change is not allowed from its current status."""

    code = "invalid_transition"
    status_code = 409


class TrainingFailure(LayerLabError):
    """
    Raised inside a training run.

    The orchestrator records it on the model as FAILED; it never reaches a
    request handler.
    """

    code = "training_failed"
    status_code = 500


class GraphShapeError(TrainingFailure):
    """Raised when the graph's input or output shape does not fit the training data."""

    code = "shape_mismatch"


class TrainingCancelled(TrainingFailure):
    """Raised between epochs when the run's cancellation token is set."""

    code = "training_cancelled"


class InferenceError(LayerLabError):
    """Raised when a prediction request cannot be served (bad input, bad image)."""

    code = "inference_failed"
    status_code = 400


class ModelNotTrainedError(InferenceError):
    """Raised when predicting against a model without a completed training run."""

    code = "model_not_trained"
    status_code = 409


def format_validation_errors(errors) -> List[Dict[str, Any]]:
    """Flatten pydantic error dicts into ``{field, message, type}`` entries."""
    problems = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        problems.append({
            "field": ".".join(loc) or "body",
            "message": error.get("msg", "Invalid value"),
            "type": error.get("type", "value_error"),
        })
    return problems
