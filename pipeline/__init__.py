"""
Pipeline package -- permit dashboard data import.

Re-exports key entry points so callers can do::

    from pipeline import import_all, check_data_structure
"""

from pipeline.importer import (
    DATASETS,
    DATASETS_BY_NAME,
    check_data_structure,
    import_all,
    import_dataset,
)

__all__ = [
    "DATASETS",
    "DATASETS_BY_NAME",
    "check_data_structure",
    "import_all",
    "import_dataset",
]
