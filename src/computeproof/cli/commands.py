"""CLI命令"""
import json

import click
from tabulate import tabulate

from ..config import configure_logging, load_settings
from ..events import EventType, format_time
from ..service import JobReceiptService

# 命令行中允许使用的阶段简称
STAGE_ALIASES = {
    "submitted": EventType.JOB_SUBMITTED.value,
    "scheduled": EventType.JOB_SCHEDULED.value,
    "started": EventType.JOB_STARTED.value,
    "progress": EventType.JOB_PROGRESS_UPDATE.value,
    "completed": EventType.JOB_COMPLETED.value,
    "failed": EventType.JOB_FAILED.value,
}


def parse_data(ctx, param, value):
    """解析--data传入的JSON对象"""
    if not value:
        return {}
    try:
        data = json.loads(value)
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}")
    if not isinstance(data, dict):
        raise click.BadParameter("must be a JSON object")
    return data


def get_service(ctx) -> JobReceiptService:
    """获取任务回执服务，未注入时根据配置创建"""
    if ctx.obj.get("service") is None:
        ctx.obj["service"] = JobReceiptService.from_settings(ctx.obj["settings"])
        ctx.call_on_close(ctx.obj["service"].close)
    return ctx.obj["service"]


def fail(envelope):
    print(f"操作失败: {envelope['error']}")
    raise SystemExit(1)


@click.group()
@click.option('--config', 'config_path', type=click.Path(), help='配置文件路径')
@click.option('--offline/--online', default=None, help='是否使用离线模式(不访问外部账本)')
@click.pass_context
def cli(ctx, config_path=None, offline=None):
    """GPU任务回执管理工具"""
    ctx.ensure_object(dict)
    overrides = {}
    if offline is not None:
        overrides["MOCK_NUMBERS_API"] = offline
    settings = load_settings(config_path, **overrides)
    configure_logging(settings)
    ctx.obj["settings"] = settings


@cli.command()
@click.argument('job_id')
@click.option('--job-type', help='任务类型')
@click.option('--priority', help='优先级')
@click.option('--submitted-by', help='提交者地址')
@click.option('--docker-image', help='容器镜像')
@click.option('--data', callback=parse_data, help='其他字段(JSON对象)')
@click.pass_context
def submit(ctx, job_id, job_type, priority, submitted_by, docker_image, data):
    """提交任务并注册资产"""
    options = {
        "jobType": job_type,
        "priority": priority,
        "submittedBy": submitted_by,
        "dockerImage": docker_image,
    }
    # 未指定的选项不覆盖--data中的同名字段
    data.update({k: v for k, v in options.items() if v is not None})
    data["jobId"] = job_id
    envelope = get_service(ctx).submit_job(data)
    if not envelope["success"]:
        fail(envelope)

    print("\n任务已提交:")
    print(f"任务ID: {envelope['jobId']}")
    print(f"资产标识: {envelope['jobNid']}")
    print(f"交易引用: {envelope['txHash']}")
    if envelope.get("explorerUrl"):
        print(f"浏览器地址: {envelope['explorerUrl']}")


@cli.command()
@click.argument('asset_id')
@click.argument('kind')
@click.option('--data', callback=parse_data, help='事件字段(JSON对象)')
@click.pass_context
def record(ctx, asset_id, kind, data):
    """记录任务状态转换

    KIND可以是事件类型(如JobCompleted)或阶段简称(如completed)
    """
    kind = STAGE_ALIASES.get(kind.lower(), kind)
    envelope = get_service(ctx).record_transition(asset_id, kind, data)
    if not envelope["success"]:
        fail(envelope)

    print(f"\n{envelope['message']}")
    print(f"事件: {envelope['eventType']}")
    print(f"交易引用: {envelope['txHash']}")
    if envelope.get("explorerUrl"):
        print(f"浏览器地址: {envelope['explorerUrl']}")


@cli.command()
@click.argument('asset_id')
@click.option('--json', 'as_json', is_flag=True, default=False, help='以JSON格式输出')
@click.pass_context
def history(ctx, asset_id, as_json):
    """查看任务的事件历史和指标"""
    envelope = get_service(ctx).get_history(asset_id)
    if not envelope["success"]:
        fail(envelope)

    if as_json:
        print(json.dumps(envelope, indent=2, ensure_ascii=False))
        return

    headers = ['时间', '事件', '执行者']
    rows = []
    for event in envelope["events"]:
        rows.append([
            format_time(event["timestamp"]),
            event["eventType"],
            event["executor"]
        ])

    if rows:
        print(tabulate(rows, headers=headers, tablefmt='grid'))
    else:
        print(f"资产 {asset_id} 没有任何事件")

    if envelope["discardedCommits"]:
        print(f"已忽略无法解码的提交: {envelope['discardedCommits']}")

    metrics = envelope.get("metrics")
    if metrics:
        print("\n指标:")
        print(f"时长: {metrics['duration']}秒")
        print(f"GPU小时: {metrics['gpuHoursUsed']:.4f}")
        print(f"费用: {metrics['cost']:.2f}")
        print(f"效率: {metrics['efficiency']}")


@cli.command()
@click.option('--host', default='0.0.0.0', help='监听地址')
@click.option('--port', default=3002, type=int, help='监听端口')
@click.pass_context
def serve(ctx, host, port):
    """启动HTTP服务"""
    import uvicorn
    from ..app import create_app

    settings = ctx.obj["settings"]
    app = create_app(settings, ctx.obj.get("service"))
    print(f"{settings.PROJECT_NAME} running on port {port}")
    print(f"ASSET_FILE_BASE_URL: {settings.ASSET_FILE_BASE_URL}")
    uvicorn.run(app, host=host, port=port)
