"""
queries
=======

Read-only SQL Server catalog queries.

Placeholders use T-SQL style ``@name`` and are bound by the connection
(:mod:`schemadiff.connection`), never formatted into the query text.
Column aliases are snake_case and match the field names in
:mod:`schemadiff.models`.
"""

# ---- tables ----
Q_LIST_TABLES = """
SELECT
  t.TABLE_SCHEMA AS schema_name,
  t.TABLE_NAME AS table_name
FROM INFORMATION_SCHEMA.TABLES t
WHERE t.TABLE_TYPE = 'BASE TABLE'
ORDER BY t.TABLE_SCHEMA, t.TABLE_NAME
"""

Q_TABLE_COLUMNS = """
SELECT
  c.COLUMN_NAME AS column_name,
  c.ORDINAL_POSITION AS position,
  c.COLUMN_DEFAULT AS default_value,
  c.IS_NULLABLE AS is_nullable,
  c.DATA_TYPE AS data_type,
  c.CHARACTER_MAXIMUM_LENGTH AS max_length,
  c.NUMERIC_PRECISION AS precision,
  c.NUMERIC_SCALE AS scale,
  c.CHARACTER_SET_NAME AS character_set,
  c.COLLATION_NAME AS collation
FROM INFORMATION_SCHEMA.COLUMNS c
WHERE c.TABLE_SCHEMA = @schema_name
  AND c.TABLE_NAME = @table_name
ORDER BY c.ORDINAL_POSITION
"""

Q_TABLE_PRIMARY_KEYS = """
SELECT
  tc.CONSTRAINT_NAME AS constraint_name,
  kcu.COLUMN_NAME AS column_name,
  kcu.ORDINAL_POSITION AS key_sequence
FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
  ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
  AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
  AND tc.TABLE_NAME = kcu.TABLE_NAME
WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
  AND tc.TABLE_SCHEMA = @schema_name
  AND tc.TABLE_NAME = @table_name
ORDER BY kcu.ORDINAL_POSITION
"""

Q_TABLE_FOREIGN_KEYS = """
SELECT
  rc.CONSTRAINT_NAME AS constraint_name,
  kcu1.COLUMN_NAME AS column_name,
  kcu2.TABLE_SCHEMA AS referenced_schema,
  kcu2.TABLE_NAME AS referenced_table,
  kcu2.COLUMN_NAME AS referenced_column,
  rc.UPDATE_RULE AS update_rule,
  rc.DELETE_RULE AS delete_rule
FROM INFORMATION_SCHEMA.REFERENTIAL_CONSTRAINTS rc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu1
  ON rc.CONSTRAINT_NAME = kcu1.CONSTRAINT_NAME
  AND rc.CONSTRAINT_SCHEMA = kcu1.CONSTRAINT_SCHEMA
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu2
  ON rc.UNIQUE_CONSTRAINT_NAME = kcu2.CONSTRAINT_NAME
  AND rc.UNIQUE_CONSTRAINT_SCHEMA = kcu2.CONSTRAINT_SCHEMA
  AND kcu1.ORDINAL_POSITION = kcu2.ORDINAL_POSITION
WHERE kcu1.TABLE_SCHEMA = @schema_name
  AND kcu1.TABLE_NAME = @table_name
ORDER BY rc.CONSTRAINT_NAME, kcu1.ORDINAL_POSITION
"""

# one row per (index, column); grouped by index name in the extractor
Q_TABLE_INDEXES = """
SELECT
  i.name AS index_name,
  i.type_desc AS index_type,
  i.is_unique AS is_unique,
  i.is_primary_key AS is_primary_key,
  ic.key_ordinal AS key_ordinal,
  c.name AS column_name,
  ic.is_descending_key AS is_descending,
  ic.is_included_column AS is_included
FROM sys.indexes i
JOIN sys.tables t ON i.object_id = t.object_id
JOIN sys.schemas s ON t.schema_id = s.schema_id
JOIN sys.index_columns ic ON i.object_id = ic.object_id AND i.index_id = ic.index_id
JOIN sys.columns c ON ic.object_id = c.object_id AND ic.column_id = c.column_id
WHERE i.type > 0
  AND s.name = @schema_name
  AND t.name = @table_name
ORDER BY i.name, ic.key_ordinal
"""

Q_CHECK_CONSTRAINTS = """
SELECT
  cc.CONSTRAINT_NAME AS constraint_name,
  'CHECK' AS constraint_type,
  cc.CHECK_CLAUSE AS definition,
  NULL AS column_name
FROM INFORMATION_SCHEMA.CHECK_CONSTRAINTS cc
JOIN INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
  ON cc.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
  AND cc.CONSTRAINT_SCHEMA = tc.CONSTRAINT_SCHEMA
WHERE tc.TABLE_SCHEMA = @schema_name
  AND tc.TABLE_NAME = @table_name
"""

Q_DEFAULT_CONSTRAINTS = """
SELECT
  dc.name AS constraint_name,
  'DEFAULT' AS constraint_type,
  dc.definition AS definition,
  c.name AS column_name
FROM sys.default_constraints dc
JOIN sys.columns c ON dc.parent_object_id = c.object_id AND dc.parent_column_id = c.column_id
JOIN sys.tables t ON dc.parent_object_id = t.object_id
JOIN sys.schemas s ON t.schema_id = s.schema_id
WHERE s.name = @schema_name
  AND t.name = @table_name
"""

# one row per (constraint, key column); merged per constraint in the extractor
Q_UNIQUE_CONSTRAINTS = """
SELECT
  tc.CONSTRAINT_NAME AS constraint_name,
  'UNIQUE' AS constraint_type,
  NULL AS definition,
  kcu.COLUMN_NAME AS column_name,
  kcu.ORDINAL_POSITION AS ordinal_position
FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
  ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME
  AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA
  AND tc.TABLE_NAME = kcu.TABLE_NAME
WHERE tc.CONSTRAINT_TYPE = 'UNIQUE'
  AND tc.TABLE_SCHEMA = @schema_name
  AND tc.TABLE_NAME = @table_name
ORDER BY tc.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
"""

CONSTRAINT_QUERIES = {
    "CHECK": Q_CHECK_CONSTRAINTS,
    "DEFAULT": Q_DEFAULT_CONSTRAINTS,
    "UNIQUE": Q_UNIQUE_CONSTRAINTS,
}

# ---- views ----
Q_LIST_VIEWS = """
SELECT
  v.TABLE_SCHEMA AS schema_name,
  v.TABLE_NAME AS view_name
FROM INFORMATION_SCHEMA.VIEWS v
ORDER BY v.TABLE_SCHEMA, v.TABLE_NAME
"""

Q_VIEW_DETAILS = """
SELECT
  v.VIEW_DEFINITION AS definition,
  v.CHECK_OPTION AS check_option,
  v.IS_UPDATABLE AS is_updatable
FROM INFORMATION_SCHEMA.VIEWS v
WHERE v.TABLE_SCHEMA = @schema_name
  AND v.TABLE_NAME = @view_name
"""

Q_VIEW_DEPENDENCIES = """
SELECT DISTINCT
  rs.name AS referenced_schema,
  ro.name AS referenced_object,
  ro.type_desc AS referenced_type
FROM sys.sql_dependencies d
JOIN sys.objects o ON d.object_id = o.object_id
JOIN sys.schemas s ON o.schema_id = s.schema_id
JOIN sys.objects ro ON d.referenced_major_id = ro.object_id
JOIN sys.schemas rs ON ro.schema_id = rs.schema_id
WHERE o.type = 'V'
  AND s.name = @schema_name
  AND o.name = @view_name
ORDER BY rs.name, ro.name
"""

# ---- procedures ----
Q_LIST_PROCEDURES = """
SELECT
  s.name AS schema_name,
  p.name AS procedure_name
FROM sys.procedures p
JOIN sys.schemas s ON p.schema_id = s.schema_id
ORDER BY s.name, p.name
"""

Q_PROCEDURE_DETAILS = """
SELECT
  p.create_date AS create_date,
  p.modify_date AS modify_date,
  m.definition AS definition
FROM sys.procedures p
JOIN sys.schemas s ON p.schema_id = s.schema_id
LEFT JOIN sys.sql_modules m ON p.object_id = m.object_id
WHERE s.name = @schema_name
  AND p.name = @procedure_name
"""

Q_PROCEDURE_PARAMETERS = """
SELECT
  pm.name AS parameter_name,
  pm.parameter_id AS parameter_id,
  t.name AS data_type,
  pm.max_length AS max_length,
  pm.precision AS precision,
  pm.scale AS scale,
  pm.is_output AS is_output,
  pm.has_default_value AS has_default,
  CAST(pm.default_value AS NVARCHAR(4000)) AS default_value
FROM sys.procedures p
JOIN sys.schemas s ON p.schema_id = s.schema_id
JOIN sys.parameters pm ON p.object_id = pm.object_id
JOIN sys.types t ON pm.user_type_id = t.user_type_id
WHERE s.name = @schema_name
  AND p.name = @procedure_name
ORDER BY pm.parameter_id
"""

# ---- functions ----
# FN scalar, IF inline table-valued, TF multi-statement table-valued
FUNCTION_TYPES = "('FN', 'IF', 'TF')"

Q_LIST_FUNCTIONS = f"""
SELECT
  s.name AS schema_name,
  f.name AS function_name
FROM sys.objects f
JOIN sys.schemas s ON f.schema_id = s.schema_id
WHERE f.type IN {FUNCTION_TYPES}
ORDER BY s.name, f.name
"""

Q_FUNCTION_DETAILS = f"""
SELECT
  f.type_desc AS function_type,
  f.create_date AS create_date,
  f.modify_date AS modify_date,
  m.definition AS definition
FROM sys.objects f
JOIN sys.schemas s ON f.schema_id = s.schema_id
LEFT JOIN sys.sql_modules m ON f.object_id = m.object_id
WHERE f.type IN {FUNCTION_TYPES}
  AND s.name = @schema_name
  AND f.name = @function_name
"""

Q_FUNCTION_PARAMETERS = f"""
SELECT
  pm.name AS parameter_name,
  pm.parameter_id AS parameter_id,
  t.name AS data_type,
  pm.max_length AS max_length,
  pm.precision AS precision,
  pm.scale AS scale,
  pm.is_output AS is_output,
  pm.has_default_value AS has_default,
  CAST(pm.default_value AS NVARCHAR(4000)) AS default_value
FROM sys.objects f
JOIN sys.schemas s ON f.schema_id = s.schema_id
JOIN sys.parameters pm ON f.object_id = pm.object_id
JOIN sys.types t ON pm.user_type_id = t.user_type_id
WHERE f.type IN {FUNCTION_TYPES}
  AND s.name = @schema_name
  AND f.name = @function_name
ORDER BY pm.parameter_id
"""

Q_SERVER_VERSION = "SELECT @@VERSION AS version"
