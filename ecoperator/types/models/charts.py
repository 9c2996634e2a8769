from typing import List, Optional
from ecoperator.types.base import BaseModel


class Chart(BaseModel):
    """One entry of the k0s helm extension list."""

    name: str
    chart_name: str
    version: str
    values: str
    target_ns: str
    order: int
    force_upgrade: Optional[bool]
    timeout: Optional[str]


class Repository(BaseModel):
    name: str
    url: str
    ca_file: Optional[str]
    cert_file: Optional[str]
    key_file: Optional[str]
    insecure: Optional[bool]
    username: Optional[str]
    password: Optional[str]


class HelmExtensions(BaseModel):
    """Declarative chart configuration: charts, repositories and a concurrency bound."""

    concurrency_level: int
    charts: List[Chart]
    repositories: List[Repository]

    def chart(self, name: str) -> Optional[Chart]:
        for chart in self.charts or []:
            if chart.name == name:
                return chart
        return None


class InstalledChart(BaseModel):
    """Live status of a helm.k0sproject.io Chart object."""

    name: str
    release_name: str
    spec_values: str
    spec_version: str
    status_version: str
    status_values_hash: str
    status_error: str
