from weeklybrief.normalize.rows import RowNormalizer, normalize_rows

__all__ = ["RowNormalizer", "normalize_rows"]
