"""TaskRouter - keyword intent routing and dependency-ordered task delegation.

Classifies a free-form request into domain tags, selects one registered
specialist handler per domain, and runs the resulting tasks in dependency
order (e.g. database -> API -> UI) with skip-cascades on failure.
"""

__version__ = "0.1.0"
