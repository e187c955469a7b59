"""Two register-based bytecode virtual machines and typed value objects."""

__version__ = "1.0.0"
__all__ = ["objects", "core", "asm_vm"]