"""
Shared fixtures: a mocked connector serving canned catalog metadata
"""
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from query_analyser.context import AnalysisContext


def build_tables():
    """accounts, customers and orders; orders.customer_id references customers.id"""
    return {
        'accounts': {
            'columns': [
                ('id', 'int4'),
                ('customer_id', 'int4'),
                ('balance', 'numeric'),
                ('status', 'varchar'),
                ('opened', 'date'),
            ],
            'indexes': [('accounts_pkey', ['id'])],
            'primary_key': ['id'],
            'exported': [],
            'imported': [],
            'sample': {
                'id': 7,
                'customer_id': 3,
                'balance': Decimal('12.50'),
                'status': "o'k",
                'opened': date(2024, 1, 2),
            },
        },
        'customers': {
            'columns': [('id', 'int4'), ('email', 'text'), ('active', 'bool')],
            'indexes': [('customers_pkey', ['id'])],
            'primary_key': ['id'],
            'exported': [('orders_customer_fk', 'orders', 'customer_id', 'customers', 'id')],
            'imported': [],
            'sample': {'id': 3, 'email': 'ann@example.com', 'active': None},
        },
        'orders': {
            'columns': [('id', 'int8'), ('customer_id', 'int4'), ('status', 'varchar'), ('total', 'numeric')],
            'indexes': [('orders_pkey', ['id'])],
            'primary_key': ['id'],
            'exported': [],
            'imported': [('orders_customer_fk', 'orders', 'customer_id', 'customers', 'id')],
            'sample': {'id': 5, 'customer_id': 3, 'status': 'new', 'total': Decimal('9.99')},
        },
    }


def make_connector(tables):
    """Mock DatabaseConnector answering metadata calls from a table mapping."""
    connector = Mock()
    connector.schema = 'public'
    connector.database = 'testdb'

    def lookup(key):
        return lambda name, schema=None: tables.get(name, {}).get(key, [])

    connector.get_columns.side_effect = lookup('columns')
    connector.get_indexes.side_effect = lookup('indexes')
    connector.get_primary_key.side_effect = lookup('primary_key')
    connector.get_exported_keys.side_effect = lookup('exported')
    connector.get_imported_keys.side_effect = lookup('imported')
    connector.get_sample_row.side_effect = lambda name, schema=None: dict(tables.get(name, {}).get('sample', {}))
    connector.get_table_size.return_value = '8192 bytes'
    connector.get_index_size.return_value = '16 kB'
    connector.execute_in_rollback.return_value = [
        'Seq Scan on public.accounts  (cost=0.00..1.01 rows=1 width=40)',
        'Planning Time: 0.050 ms',
        'Execution Time: 0.020 ms',
    ]
    connector.test_connection.return_value = True
    return connector


@pytest.fixture
def tables():
    return build_tables()


@pytest.fixture
def mock_connector(tables):
    return make_connector(tables)


@pytest.fixture
def context(mock_connector):
    return AnalysisContext.for_connector(mock_connector)
