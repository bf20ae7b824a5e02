from weeklybrief.executor.bigquery_executor import (
    BoundedExecutor,
    CostEstimator,
    QueryRunner,
    WarehouseClient,
)

__all__ = ["BoundedExecutor", "CostEstimator", "QueryRunner", "WarehouseClient"]
