"""
Excel and file parsers module.
"""

from parsers.equipment_list_parser import parse_equipment_list

__all__ = [
    "parse_equipment_list",
]
