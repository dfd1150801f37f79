"""
pygoo - Cloud Monitoring Manager

https://cloud.google.com/monitoring/api/ref_v3/rest/v3/projects.timeSeries/list
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pygoo.core.exceptions import MonitoringError
from pygoo.managers.base import BaseManager

CPU_UTILIZATION = 'compute.googleapis.com/instance/cpu/utilization'
ALIGN_MEAN = 'ALIGN_MEAN'


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def _point_value(point: Dict[str, Any]) -> float:
    value = point.get('value', {})
    for field_name in ('doubleValue', 'int64Value'):
        if field_name in value:
            return float(value[field_name])
    raise MonitoringError(f"Unsupported point value: {value}")


class MonitoringManager(BaseManager):
    """Low level communication with Google Cloud Monitoring."""

    error_class = MonitoringError

    def get_time_series(self, project_id: str, metric_type: str,
                        labels: Optional[Dict[str, str]] = None, minutes: int = 5,
                        alignment_period: Optional[str] = None,
                        aligner: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List the time series of a metric over the last `minutes`.

        Args:
            labels: Metric label filters, e.g. {'instance_name': 'web-1'}
            alignment_period: e.g. '180s'; requires aligner
            aligner: Per-series aligner, e.g. 'ALIGN_MEAN'
        """
        metric_filter = f'metric.type = "{metric_type}"'
        for label, value in sorted((labels or {}).items()):
            metric_filter += f' AND metric.label.{label} = "{value}"'

        end = datetime.now(timezone.utc)
        params = {
            'name': f"projects/{project_id}",
            'filter': metric_filter,
            'interval_startTime': _rfc3339(end - timedelta(minutes=minutes)),
            'interval_endTime': _rfc3339(end),
        }
        if alignment_period:
            params['aggregation_alignmentPeriod'] = alignment_period
        if aligner:
            params['aggregation_perSeriesAligner'] = aligner

        return list(self._paginate(
            self.service.projects().timeSeries(), 'monitoring.timeSeries.list',
            items_key='timeSeries', **params
        ))

    def get_avg_cpu_utilization(self, project_id: str, instance_name: str) -> float:
        """
        Get the average CPU utilization of the instance over the last 3 minutes.

        Raises:
            MonitoringError: If no data point is available yet
        """
        series = self.get_time_series(
            project_id, CPU_UTILIZATION, labels={'instance_name': instance_name},
            minutes=3, alignment_period='180s', aligner=ALIGN_MEAN
        )

        if not series or not series[0].get('points'):
            raise MonitoringError(f"No CPU utilization data: instance[{instance_name}]")

        utilization = _point_value(series[0]['points'][0])
        self.logger.debug(f"CPU utilization: instance[{instance_name}], avg[{utilization}]")
        return utilization
