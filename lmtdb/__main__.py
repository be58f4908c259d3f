from lmtdb.cli import run

run()
