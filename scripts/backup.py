"""Back up the local vault cache (ciphertext and salt only, no plaintext).

Usage (from repo root):
  python -m scripts.backup --dest backups/
"""
from __future__ import annotations
import shutil
from datetime import datetime
from pathlib import Path
import click
from config import settings

@click.command()
@click.option('--dest', type=click.Path(file_okay=False, path_type=Path), default=Path('backups'), help='Destination directory for backups.')
def main(dest: Path):
	cache = settings.cache_path()
	if not cache.exists():
		click.echo(f"No vault cache at {cache}; nothing to backup.")
		raise SystemExit(1)
	dest.mkdir(parents=True, exist_ok=True)
	stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
	target = dest / f"cache_{stamp}.json"
	shutil.copy2(cache, target)
	click.echo(f"Backup written: {target}")

if __name__ == '__main__':  # pragma: no cover
	main()
