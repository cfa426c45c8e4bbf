"""
File-level helpers: lazy CSV rows, encoding conversion, prompt files.
"""

from .encoding import convert_file_encoding
from .prompts import SystemPromptEntry, load_system_prompts
from .rows import RowReader, RowWriter

__all__ = [
    'convert_file_encoding',
    'load_system_prompts',
    'RowReader',
    'RowWriter',
    'SystemPromptEntry',
]
