"""Catalog listing"""

from typing import List

from tabulate import tabulate
from tqdm import tqdm

from registry_cli.models import CatalogEntry
from registry_cli.registry_client import RegistryClient


def list_images(registry_client: RegistryClient, show_progress: bool = False) -> List[CatalogEntry]:
    """Return every repository with its tags; repositories without tags are skipped"""
    entries = []
    names = registry_client.list_repositories()
    for name in tqdm(names, desc="Reading tags", unit="repo", disable=not show_progress, leave=False):
        tags = registry_client.list_tags(name)
        if not tags:
            continue
        entries.append(CatalogEntry(name=name, tags=tags))
    return entries


def format_catalog(entries: List[CatalogEntry]) -> str:
    """Render the catalog as a grid table"""
    if not entries:
        return "The registry catalog is empty."
    rows = [[entry.name, len(entry.tags), ", ".join(entry.tags)] for entry in entries]
    return tabulate(rows, headers=["Repository", "Tags", "Tag names"], tablefmt="grid", maxcolwidths=[None, None, 60])
