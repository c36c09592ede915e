"""
CPU kernels over Tensor views.

Every kernel takes its pre-allocated output view(s) first, then inputs and
scalars, validates everything, and only then writes the output.
"""

from .argmax import argmax  # noqa: F401
from .embedding import embedding  # noqa: F401
from .linear import linear  # noqa: F401
from .rms_norm import rms_norm  # noqa: F401
from .rope import rope, rope_cache  # noqa: F401
from .self_attention import causal_mask, masked_softmax, self_attention  # noqa: F401
from .swiglu import swiglu  # noqa: F401
