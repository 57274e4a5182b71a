"""mapcore turns declarative profile layers into a renderable, queryable layer model."""

__version__ = "0.1.0"
