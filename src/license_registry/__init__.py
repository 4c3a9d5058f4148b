"""CommonGround license registry core."""

__all__ = [
    "errors",
    "config",
    "content",
    "hashing",
    "contenthash",
    "entry",
    "manifest",
    "gateway",
    "resolver",
    "chain",
    "registry",
    "verifier",
    "compare",
    "eip712",
    "publisher",
]

__version__ = "0.1.0"
