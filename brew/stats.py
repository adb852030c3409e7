"""
Folds counter rows into per-project, per-version totals.

Platforms only exist to keep counter rows unique; every platform row of
a version is summed into that version's entry. Project totals are always
computed from the version entries so they can never drift from them.
"""
from dataclasses import dataclass, field
from typing import Dict


@dataclass
class VersionStats:
    downloads: int = 0
    installs: int = 0

    def as_json(self):
        return {"downloads": self.downloads, "installs": self.installs}


@dataclass
class ProjectStats:
    versions: Dict[str, VersionStats] = field(default_factory=dict)

    @property
    def total_downloads(self):
        return sum(v.downloads for v in self.versions.values())

    @property
    def total_installs(self):
        return sum(v.installs for v in self.versions.values())

    def as_json(self):
        data = {
            "total_downloads": self.total_downloads,
            "total_installs": self.total_installs,
        }
        for version, version_stats in self.versions.items():
            data[version] = version_stats.as_json()
        return data


class AggregatedStats(dict):
    "project name -> ProjectStats"

    def as_json(self):
        return {project: stats.as_json() for project, stats in self.items()}


def build(rows):
    stats = AggregatedStats()
    for row in rows:
        project = stats.setdefault(row.project, ProjectStats())
        version = project.versions.setdefault(row.version, VersionStats())
        version.downloads += row.download_count
        version.installs += row.install_count
    return stats
