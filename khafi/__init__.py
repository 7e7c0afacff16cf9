"""Payment backend, nullifier checking, proof generation service and HTTP clients."""

__version__ = "0.1.0"