from cargo_bitwarden.main import cli

cli()
