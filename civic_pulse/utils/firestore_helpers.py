"""
Firestore query helpers using the keyword filter API
(positional where() arguments are deprecated in google-cloud-firestore).
"""

from google.cloud.firestore_v1.base_query import FieldFilter


def where_filter(query, field_path: str, op_string: str, value):
    """
    Usage:
        query = where_filter(collection, "category", "==", "Street Lighting")
        query = where_filter(query, "geo_cell", "in", ["1:2", "1:3"])
    """
    return query.where(filter=FieldFilter(field_path, op_string, value))
