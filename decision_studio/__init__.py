"""Decision Studio - streamed multi-role decision evaluation.

This service evaluates a business decision by running a pipeline of
intelligence roles and streaming their progress to live observers:
- Decision framing (one role, sequential)
- Specialized analysis (several roles, in parallel)
- Executive synthesis (one role, reads every insight gathered)
"""

__version__ = "0.1.0"
