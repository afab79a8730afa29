from geopicker.cli import cli

cli(prog_name="geopicker")
