"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its models, service layer and API
blueprint, while reusing platform primitives (actor loading, membership, audit,
DB session, error types).
"""
