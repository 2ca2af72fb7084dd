from pyzpos.util.io.stack import (
    read_array,
    read_matrix,
    read_stack,
    write_array,
    write_stack,
)
from pyzpos.util.io.store import load_store, save_store

__all__ = [
    "read_array",
    "read_matrix",
    "read_stack",
    "write_array",
    "write_stack",
    "load_store",
    "save_store",
]
