"""PostgreSQL DDL for a data model snapshot."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List

SIMPLE_TYPES = {
    "text": "TEXT",
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "decimal": "DECIMAL(10, 2)",
    "float": "FLOAT",
    "double": "DOUBLE PRECISION",
    "boolean": "BOOLEAN",
    "date": "DATE",
    "time": "TIME",
    "datetime": "TIMESTAMP",
    "timestamp": "TIMESTAMP",
    "uuid": "UUID",
    "json": "JSON",
    "jsonb": "JSONB",
    "array": "TEXT[]",
}


@dataclass
class SqlOptions:
    schema_name: str = "public"
    include_comments: bool = True
    include_foreign_keys: bool = True
    generate_indexes: bool = False


def postgres_type(attribute: dict) -> str:
    data_type = (attribute.get("data_type") or "").lower()
    if data_type == "varchar":
        return f"VARCHAR({attribute.get('length') or 255})"
    if data_type == "char":
        return f"CHAR({attribute.get('length') or 1})"
    return SIMPLE_TYPES.get(data_type, "TEXT")


def _quote_literal(text: str) -> str:
    return text.replace("'", "''")


def _column(attribute: dict, include_comments: bool) -> str:
    column = f'  "{attribute["name"]}" {postgres_type(attribute)}'
    if attribute.get("is_primary_key"):
        column += " PRIMARY KEY"
    if attribute.get("is_required") and not attribute.get("is_primary_key"):
        column += " NOT NULL"
    if attribute.get("is_unique") and not attribute.get("is_primary_key"):
        column += " UNIQUE"
    if attribute.get("default_value"):
        column += f" DEFAULT {attribute['default_value']}"
    if include_comments and attribute.get("description"):
        column += f" -- {attribute['description']}"
    return column


def generate_sql(snapshot: dict, options: SqlOptions = None) -> str:
    options = options or SqlOptions()
    schema = options.schema_name or "public"

    entities = snapshot.get("entities", [])
    by_entity: Dict[str, List[dict]] = {}
    for attribute in snapshot.get("attributes", []):
        by_entity.setdefault(attribute["entity_id"], []).append(attribute)
    names = {e["id"]: e["name"] for e in entities}
    primary_keys = {
        entity_id: next((a["name"] for a in attrs if a.get("is_primary_key")), None)
        for entity_id, attrs in by_entity.items()
    }

    generated_on = datetime.now(timezone.utc).isoformat()
    sql = f"-- SQL Schema generated by Data Modeler\n-- Generated on: {generated_on}\n\n"
    if schema != "public":
        sql += f"-- Create schema if it doesn't exist\nCREATE SCHEMA IF NOT EXISTS {schema};\n\n"

    for entity in entities:
        attributes = by_entity.get(entity["id"], [])
        table = f"{schema}.{entity['name']}"

        if options.include_comments:
            sql += f"-- Table: {table}\n"
            if entity.get("description"):
                sql += f"-- Description: {entity['description']}\n"

        lines = [_column(a, options.include_comments) for a in attributes]

        if options.include_foreign_keys:
            for fk in attributes:
                referenced = fk.get("referenced_entity_id")
                if not (fk.get("is_foreign_key") and referenced in names and primary_keys.get(referenced)):
                    continue
                lines.append(
                    f'  CONSTRAINT "fk_{entity["name"]}_{fk["name"]}" FOREIGN KEY ("{fk["name"]}") '
                    f'REFERENCES {schema}.{names[referenced]} ("{primary_keys[referenced]}") '
                    f"ON DELETE RESTRICT ON UPDATE RESTRICT"
                )

        sql += f"CREATE TABLE {table} (\n" + ",\n".join(lines) + "\n);\n\n"

        if options.include_comments and entity.get("description"):
            sql += f"COMMENT ON TABLE {table} IS '{_quote_literal(entity['description'])}';\n"
            for attribute in attributes:
                if attribute.get("description"):
                    sql += (
                        f'COMMENT ON COLUMN {table}."{attribute["name"]}" '
                        f"IS '{_quote_literal(attribute['description'])}';\n"
                    )
            sql += "\n"

        if options.generate_indexes:
            indexed = [a for a in attributes if a.get("is_foreign_key") and not a.get("is_primary_key")]
            for attribute in indexed:
                sql += f'CREATE INDEX "idx_{entity["name"]}_{attribute["name"]}" ON {table} ("{attribute["name"]}");\n'
            if indexed:
                sql += "\n"

    return sql
