"""Library Lending - Core Application Package

This package contains the lending record keeper modules:
- Collection store (database.py)
- Entity models (book.py, member.py, borrow_record.py)
- Collection wrappers (catalog.py, directory.py, ledger.py)
- Lending transaction engine (engine.py)
- Library service and read side (library.py)
- HTTP API (api.py) and CLI (cli.py)
"""

__version__ = "1.0.0"
