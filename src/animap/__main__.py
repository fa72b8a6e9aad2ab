from animap.cli import run

run()
