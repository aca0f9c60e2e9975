"""
Directory Repository - known customers and projects per company.

Insertion order is preserved on read (ORDER BY id); the matcher relies on it
to break ties between projects with equal keyword counts.
"""

from __future__ import annotations

import json

from billq.activities.models import utc_now
from billq.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from billq.matching.models import KnownCustomer, KnownProject
from billq.observability.logging import get_logger

logger = get_logger(__name__)


class DirectoryRepository:
    @staticmethod
    @retry_on_db_lock()
    def add_customer(company_id: str, customer: KnownCustomer) -> KnownCustomer:
        """Insert or update a customer by (company_id, name)."""
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO customers (company_id, name, domain, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(company_id, name) DO UPDATE SET domain = excluded.domain
                """,
                (company_id, customer.name, customer.domain, utc_now().isoformat()),
            )
        logger.info("Saved customer for company %s", company_id)
        return customer

    @staticmethod
    @retry_on_db_lock()
    def add_project(company_id: str, project: KnownProject) -> KnownProject:
        """Insert or update a project by (company_id, name)."""
        with db_transaction() as conn:
            conn.execute(
                """
                INSERT INTO projects (company_id, name, customer_name, keywords, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(company_id, name) DO UPDATE SET
                    customer_name = excluded.customer_name,
                    keywords = excluded.keywords
                """,
                (
                    company_id,
                    project.name,
                    project.customer_name,
                    json.dumps(project.keywords),
                    utc_now().isoformat(),
                ),
            )
        logger.info("Saved project for company %s", company_id)
        return project

    @staticmethod
    def list_customers(company_id: str) -> list[KnownCustomer]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM customers WHERE company_id = ? ORDER BY id",
                (company_id,),
            ).fetchall()
        return [KnownCustomer.from_db_row(dict(row)) for row in rows]

    @staticmethod
    def list_projects(company_id: str) -> list[KnownProject]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM projects WHERE company_id = ? ORDER BY id",
                (company_id,),
            ).fetchall()
        return [KnownProject.from_db_row(dict(row)) for row in rows]
