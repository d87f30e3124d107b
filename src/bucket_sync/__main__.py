from bucket_sync.cli import cli

cli()
