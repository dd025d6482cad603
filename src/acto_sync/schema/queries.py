"""T-SQL statements for the target catalog and the metadata store.

Target queries are read-only ``sys.*`` catalog reads.  Metadata store
statements use SQLAlchemy ``:name`` bind parameters.
"""

# ============================================================================
# Target database (read-only)
# ============================================================================

SERVER_NAME = "SELECT @@SERVERNAME"

TARGET_TABLES = """
    SELECT t.name AS table_name, s.name AS schema_name
    FROM sys.tables t
    INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
    WHERE t.is_ms_shipped = 0
    ORDER BY s.name, t.name
"""

# Column order is positional: name, type, max length, precision, scale,
# nullable, primary key, foreign key, ordinal.
TARGET_COLUMNS = """
    SELECT
        c.name AS column_name,
        typ.name AS data_type,
        c.max_length,
        c.precision,
        c.scale,
        c.is_nullable,
        CAST(CASE WHEN pk.column_id IS NOT NULL THEN 1 ELSE 0 END AS bit) AS is_primary_key,
        CAST(CASE WHEN fk.parent_column_id IS NOT NULL THEN 1 ELSE 0 END AS bit) AS is_foreign_key,
        c.column_id AS ordinal_position
    FROM sys.columns c
    INNER JOIN sys.tables t ON c.object_id = t.object_id
    INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
    INNER JOIN sys.types typ ON c.user_type_id = typ.user_type_id
    LEFT JOIN (
        SELECT ic.object_id, ic.column_id
        FROM sys.indexes i
        INNER JOIN sys.index_columns ic
            ON i.object_id = ic.object_id AND i.index_id = ic.index_id
        WHERE i.is_primary_key = 1
    ) pk ON pk.object_id = c.object_id AND pk.column_id = c.column_id
    LEFT JOIN (
        SELECT DISTINCT parent_object_id, parent_column_id
        FROM sys.foreign_key_columns
    ) fk ON fk.parent_object_id = c.object_id AND fk.parent_column_id = c.column_id
    WHERE s.name = :schema_name AND t.name = :table_name
    ORDER BY c.column_id
"""

TARGET_FOREIGN_KEYS = """
    SELECT
        fk.name AS foreign_key_name,
        ps.name AS schema_name,
        pt.name AS table_name,
        pc.name AS column_name,
        rs.name AS referenced_schema_name,
        rt.name AS referenced_table_name,
        rc.name AS referenced_column_name,
        fk.delete_referential_action_desc AS on_delete_action,
        fk.update_referential_action_desc AS on_update_action
    FROM sys.foreign_keys fk
    INNER JOIN sys.foreign_key_columns fkc ON fk.object_id = fkc.constraint_object_id
    INNER JOIN sys.tables pt ON fkc.parent_object_id = pt.object_id
    INNER JOIN sys.schemas ps ON pt.schema_id = ps.schema_id
    INNER JOIN sys.columns pc
        ON fkc.parent_object_id = pc.object_id AND fkc.parent_column_id = pc.column_id
    INNER JOIN sys.tables rt ON fkc.referenced_object_id = rt.object_id
    INNER JOIN sys.schemas rs ON rt.schema_id = rs.schema_id
    INNER JOIN sys.columns rc
        ON fkc.referenced_object_id = rc.object_id AND fkc.referenced_column_id = rc.column_id
    ORDER BY ps.name, pt.name, fk.name, fkc.constraint_column_id
"""

TARGET_PROCEDURES = """
    SELECT
        s.name AS schema_name,
        p.name AS procedure_name,
        OBJECT_DEFINITION(p.object_id) AS definition
    FROM sys.procedures p
    INNER JOIN sys.schemas s ON p.schema_id = s.schema_id
    WHERE p.is_ms_shipped = 0
    ORDER BY s.name, p.name
"""

# ============================================================================
# Metadata store: schema snapshot upserts
# ============================================================================

UPSERT_TABLE = """
    UPDATE TablesMetadata
    SET UpdatedAt = GETUTCDATE()
    WHERE ProjectId = :project_id AND SchemaName = :schema_name AND TableName = :table_name;

    IF @@ROWCOUNT = 0
        INSERT INTO TablesMetadata (ProjectId, SchemaName, TableName, CreatedAt)
        VALUES (:project_id, :schema_name, :table_name, GETUTCDATE());
"""

GET_PROJECT_TABLES = """
    SELECT TableId, SchemaName, TableName
    FROM TablesMetadata
    WHERE ProjectId = :project_id
"""

GET_PROJECT_COLUMNS = """
    SELECT c.ColumnId, c.TableId, c.ColumnName
    FROM ColumnsMetadata c
    INNER JOIN TablesMetadata t ON c.TableId = t.TableId
    WHERE t.ProjectId = :project_id
"""

UPSERT_COLUMN = """
    UPDATE ColumnsMetadata
    SET DataType = :data_type,
        MaxLength = :max_length,
        Precision = :precision,
        Scale = :scale,
        IsNullable = :is_nullable,
        IsPrimaryKey = :is_primary_key,
        IsForeignKey = :is_foreign_key,
        ColumnOrder = :ordinal_position
    WHERE TableId = :table_id AND ColumnName = :column_name;

    IF @@ROWCOUNT = 0
        INSERT INTO ColumnsMetadata (
            TableId, ColumnName, DataType, MaxLength, Precision, Scale,
            IsNullable, IsPrimaryKey, IsForeignKey, ColumnOrder
        )
        VALUES (
            :table_id, :column_name, :data_type, :max_length, :precision, :scale,
            :is_nullable, :is_primary_key, :is_foreign_key, :ordinal_position
        );
"""

UPSERT_FOREIGN_KEY = """
    UPDATE ForeignKeyMetadata
    SET TableId = :table_id,
        ReferencedTableId = :referenced_table_id,
        ForeignKeyName = :foreign_key_name,
        OnDeleteAction = :on_delete_action,
        OnUpdateAction = :on_update_action
    WHERE ColumnId = :column_id AND ReferencedColumnId = :referenced_column_id;

    IF @@ROWCOUNT = 0
        INSERT INTO ForeignKeyMetadata (
            TableId, ColumnId, ReferencedTableId, ReferencedColumnId,
            ForeignKeyName, OnDeleteAction, OnUpdateAction
        )
        VALUES (
            :table_id, :column_id, :referenced_table_id, :referenced_column_id,
            :foreign_key_name, :on_delete_action, :on_update_action
        );
"""

UPSERT_PROCEDURE = """
    UPDATE SpMetadata
    SET Definition = :definition,
        UpdatedAt = GETUTCDATE(),
        UpdatedBy = :user_id
    WHERE ProjectId = :project_id
      AND ClientId = :client_id
      AND SchemaName = :schema_name
      AND ProcedureName = :procedure_name;

    IF @@ROWCOUNT = 0
        INSERT INTO SpMetadata (
            ProjectId, ClientId, SchemaName, ProcedureName, Definition, CreatedBy, CreatedAt
        )
        VALUES (
            :project_id, :client_id, :schema_name, :procedure_name, :definition,
            :user_id, GETUTCDATE()
        );
"""

# ============================================================================
# Metadata store: projects, clients, status
# ============================================================================

PROJECT_COLUMNS = """
    ProjectId AS project_id, ProjectName AS project_name, Description AS description,
    DatabaseName AS database_name, DatabaseType AS database_type,
    IsLinked AS is_linked, IsActive AS is_active,
    CreatedAt AS created_at, CreatedBy AS created_by,
    UpdatedAt AS updated_at, UpdatedBy AS updated_by
"""

GET_PROJECT_BY_ID = f"""
    SELECT {PROJECT_COLUMNS}
    FROM Projects
    WHERE ProjectId = :project_id AND IsActive = 1
"""

GET_ACTIVE_PROJECTS = f"""
    SELECT {PROJECT_COLUMNS}
    FROM Projects
    WHERE IsActive = 1
    ORDER BY ProjectName
"""

INSERT_PROJECT = """
    INSERT INTO Projects (
        ProjectName, Description, DatabaseName, DatabaseType,
        IsLinked, IsActive, CreatedAt, CreatedBy
    )
    OUTPUT inserted.ProjectId
    VALUES (
        :project_name, :description, :database_name, :database_type,
        0, 1, GETUTCDATE(), :user_id
    )
"""

UPDATE_PROJECT = """
    UPDATE Projects
    SET ProjectName = :project_name,
        Description = :description,
        DatabaseName = :database_name,
        UpdatedAt = GETUTCDATE(),
        UpdatedBy = :user_id
    WHERE ProjectId = :project_id AND IsActive = 1
"""

SOFT_DELETE_PROJECT = """
    UPDATE Projects
    SET IsActive = 0, UpdatedAt = GETUTCDATE(), UpdatedBy = :user_id
    WHERE ProjectId = :project_id AND IsActive = 1
"""

SET_PROJECT_LINKED = """
    UPDATE Projects
    SET IsLinked = :is_linked, UpdatedAt = GETUTCDATE()
    WHERE ProjectId = :project_id
"""

GET_SYNC_STATUS = """
    SELECT ProjectId AS project_id, SyncStatus AS status,
           SyncProgress AS progress, LastSyncAttempt AS last_sync_attempt
    FROM Projects
    WHERE ProjectId = :project_id AND SyncStatus IS NOT NULL
"""

SET_SYNC_STATUS = """
    UPDATE Projects
    SET SyncStatus = :status,
        SyncProgress = :progress,
        LastSyncAttempt = GETUTCDATE()
    WHERE ProjectId = :project_id
"""

CLIENT_COLUMNS = """
    ClientId AS client_id, ClientName AS client_name, IsActive AS is_active,
    CreatedAt AS created_at, CreatedBy AS created_by
"""

GET_CLIENT_BY_NAME = f"""
    SELECT {CLIENT_COLUMNS}
    FROM Clients
    WHERE ClientName = :client_name AND IsActive = 1
"""

GET_CLIENT_BY_ID = f"""
    SELECT {CLIENT_COLUMNS}
    FROM Clients
    WHERE ClientId = :client_id AND IsActive = 1
"""

INSERT_CLIENT = """
    INSERT INTO Clients (ClientName, IsActive, CreatedAt, CreatedBy)
    OUTPUT inserted.ClientId
    VALUES (:client_name, 1, GETUTCDATE(), :user_id)
"""

IS_CLIENT_LINKED = """
    SELECT CASE
        WHEN EXISTS (
            SELECT 1 FROM ProjectClients
            WHERE ProjectId = :project_id AND ClientId = :client_id AND IsActive = 1
        ) THEN CAST(1 AS BIT)
        ELSE CAST(0 AS BIT)
    END
"""

LINK_CLIENT = """
    UPDATE ProjectClients
    SET IsActive = 1, UpdatedAt = GETUTCDATE(), UpdatedBy = :user_id
    WHERE ProjectId = :project_id AND ClientId = :client_id;

    IF @@ROWCOUNT = 0
        INSERT INTO ProjectClients (ProjectId, ClientId, IsActive, CreatedAt, CreatedBy)
        VALUES (:project_id, :client_id, 1, GETUTCDATE(), :user_id);
"""

# Same-server path; the procedure name comes from settings and is quoted
SAME_SERVER_SYNC = "EXEC {procedure} @ProjectId = :project_id, @DatabaseName = :database_name, @UserId = :user_id"
