"""状态页与只读 HTTP API

所有接口只读取状态投影和历史记录，不修改任何状态。
"""

import html
import json
from typing import Any, Callable, Dict, List, Optional

from aiohttp import web

from ..models.config import StatusPageConfig
from ..services.history_store import HistoryStore
from ..services.status_projection import StatusProjection
from ..utils.log_manager import get_logger
from ..utils.time_utils import to_iso, utc_now


DEFAULT_HISTORY_LIMIT = 100


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.Response(
        text=json.dumps(data, indent=2, ensure_ascii=False),
        status=status,
        content_type='application/json',
    )


def _int_query(request: web.Request, key: str, default: int) -> int:
    value = request.query.get(key)
    if value is None:
        return default
    try:
        number = int(value)
    except ValueError:
        raise web.HTTPBadRequest(text=f"{key} must be an integer")
    if number <= 0:
        raise web.HTTPBadRequest(text=f"{key} must be positive")
    return number


class StatusServer:
    """基于 aiohttp.web 的状态服务

    路由:
        GET /api/status                   当前状态快照
        GET /api/history/{name}           最近的检查记录，?limit= 默认 100
        GET /api/history/{name}/hourly    按小时聚合，?hours= 默认保留天数 x 24
        GET /health                       存活检查
        GET /                             状态页
    """

    def __init__(self, projection: StatusProjection, history_store: HistoryStore,
                 config: Optional[StatusPageConfig] = None,
                 stats_provider: Optional[Callable[[], Dict[str, Any]]] = None):
        """
        Args:
            projection: 状态投影
            history_store: 历史记录存储
            config: 状态页配置
            stats_provider: 返回调度器统计信息，在 /health 中展示
        """
        self.projection = projection
        self.history_store = history_store
        self.config = config or StatusPageConfig()
        self.stats_provider = stats_provider
        self.logger = get_logger('status_server')

        self.app = self.create_app()
        self._runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/api/status', self.get_status)
        app.router.add_get('/api/history/{name}', self.get_history)
        app.router.add_get('/api/history/{name}/hourly', self.get_hourly)
        app.router.add_get('/health', self.health)
        app.router.add_get('/', self.index)
        return app

    async def start(self):
        """监听配置的地址和端口，端口无法绑定时抛出 OSError"""
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.config.host, self.config.port)
        try:
            await site.start()
        except OSError:
            await self._runner.cleanup()
            self._runner = None
            raise
        self.logger.info(
            f"状态页已启动: http://{self.config.host}:{self.config.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self.logger.info("状态页已停止")

    async def get_status(self, request: web.Request) -> web.Response:
        return json_response(self.projection.to_dict())

    async def get_history(self, request: web.Request) -> web.Response:
        name = request.match_info['name']
        limit = _int_query(request, 'limit', DEFAULT_HISTORY_LIMIT)
        checks = self.history_store.recent(name, limit)
        return json_response([c.to_dict() for c in checks])

    async def get_hourly(self, request: web.Request) -> web.Response:
        name = request.match_info['name']
        default_hours = max(1, int(self.history_store.retention_days * 24))
        hours = _int_query(request, 'hours', default_hours)
        buckets = self.history_store.hourly_averages(name, hours)
        return json_response([b.to_dict() for b in buckets])

    async def health(self, request: web.Request) -> web.Response:
        data: Dict[str, Any] = {
            'status': 'ok',
            'timestamp': to_iso(utc_now()),
        }
        if self.stats_provider is not None:
            data['scheduler'] = self.stats_provider()
        return json_response(data)

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text=self.render_html(), content_type='text/html')

    def render_html(self) -> str:
        """渲染状态页，按分类分组，保持配置顺序"""
        snapshot = self.projection.snapshot()
        title = html.escape(snapshot.title)

        categories: List[str] = []
        grouped: Dict[str, list] = {}
        for state in snapshot.services:
            category = state.category or 'Uncategorized'
            if category not in grouped:
                grouped[category] = []
                categories.append(category)
            grouped[category].append(state)

        rows = []
        for category in categories:
            rows.append(f'<tr class="category"><th colspan="4">{html.escape(category)}</th></tr>')
            for state in grouped[category]:
                response_time = (f'{state.response_time}ms'
                                 if state.response_time is not None else '-')
                rows.append(
                    f'<tr class="{state.status.value}">'
                    f'<td>{html.escape(state.name)}</td>'
                    f'<td>{state.status.value.upper()}</td>'
                    f'<td>{response_time}</td>'
                    f'<td>{html.escape(state.error or "")}</td>'
                    '</tr>'
                )

        if snapshot.services:
            all_up = all(s.status.value == 'up' for s in snapshot.services)
            banner = 'All systems operational' if all_up else 'Some systems are down'
        else:
            banner = 'No services configured'

        incident_rows = []
        for incident in snapshot.incidents:
            state = 'Resolved' if incident.resolved else 'Ongoing'
            incident_rows.append(
                '<tr>'
                f'<td>{html.escape(incident.service)}</td>'
                f'<td>{html.escape(incident.error)}</td>'
                f'<td>{to_iso(incident.timestamp)}</td>'
                f'<td>{state}</td>'
                '</tr>'
            )
        incidents_html = (
            '<table><tr><th>Service</th><th>Error</th><th>Started</th><th>State</th></tr>'
            + ''.join(incident_rows) + '</table>'
            if incident_rows else '<p>No incidents</p>'
        )

        return (
            '<!DOCTYPE html><html><head><meta charset="utf-8">'
            f'<title>{title}</title></head><body>'
            f'<h1>{title}</h1><p class="banner">{banner}</p>'
            '<table><tr><th>Service</th><th>Status</th><th>Response</th><th>Error</th></tr>'
            + ''.join(rows) + '</table>'
            '<h2>Incidents</h2>' + incidents_html
            + f'<p class="updated">Last update: {to_iso(snapshot.last_update) or "-"}</p>'
            '</body></html>'
        )
