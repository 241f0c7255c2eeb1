"""Client Intelligence Engine.

Reconciles a client roster with billing usage, profiles product adoption per
segment, scores client similarity, composes tiered product recommendations,
and routes each query to the cheapest data source that can answer it.
"""

__version__ = "0.1.0"
