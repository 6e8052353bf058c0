from dataclasses import dataclass, asdict
from typing import Any, Dict, Mapping, Optional

from .config import DEFAULT_PARAMETERS, PARAMETER_RANGES

# Form field names used by the page sliders, mapped to parameter names.
FORM_ALIASES = {
    'step': 'stride',
    'canny1': 'low_threshold',
    'canny2': 'high_threshold',
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(value, high))


@dataclass(frozen=True)
class DetectionParameters:
    """
    The three slider values read by a detection run.

    Each value is kept inside its slider range; the pair of thresholds is not
    cross-checked, so low_threshold may exceed high_threshold.
    """
    stride: int = DEFAULT_PARAMETERS['stride']
    low_threshold: float = DEFAULT_PARAMETERS['low_threshold']
    high_threshold: float = DEFAULT_PARAMETERS['high_threshold']

    @classmethod
    def from_form(cls, form: Optional[Mapping[str, Any]]) -> "DetectionParameters":
        """
        Parses slider values from a request form, falling back to defaults.

        Accepts the slider field names (step, canny1, canny2) and the long
        names; when a form carries both, the long name wins.
        """
        form = form or {}
        values = dict(DEFAULT_PARAMETERS)
        # aliases first so long names overwrite them
        keys = [k for k in form if k in FORM_ALIASES] + [k for k in form if k in DEFAULT_PARAMETERS]
        for key in keys:
            name = FORM_ALIASES.get(key, key)
            raw = form.get(key)
            if raw is None or raw == '':
                continue
            try:
                values[name] = float(raw)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid value for {key}: {raw!r}")

        lo, hi = PARAMETER_RANGES['stride']
        stride = int(round(clamp(values['stride'], lo, hi)))
        lo, hi = PARAMETER_RANGES['low_threshold']
        low = clamp(values['low_threshold'], lo, hi)
        lo, hi = PARAMETER_RANGES['high_threshold']
        high = clamp(values['high_threshold'], lo, hi)

        return cls(stride=stride, low_threshold=low, high_threshold=high)

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def parameter_schema() -> Dict[str, Dict[str, float]]:
    """Defaults and ranges for the page sliders."""
    return {
        name: {
            'default': DEFAULT_PARAMETERS[name],
            'min': PARAMETER_RANGES[name][0],
            'max': PARAMETER_RANGES[name][1],
        }
        for name in DEFAULT_PARAMETERS
    }
