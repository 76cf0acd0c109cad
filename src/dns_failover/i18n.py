"""
Internationalization (i18n) module for the DNS failover controller.

Provides translations for all user-facing chat messages in English (en) and
Simplified Chinese (zh).
"""

from typing import Optional


# Supported languages
SUPPORTED_LANGUAGES = frozenset({"en", "zh"})
DEFAULT_LANGUAGE = "en"


# Translation dictionary with all messages
# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Input validation messages
    "validation.empty_input": {
        "en": "Hostname is empty",
        "zh": "域名为空",
    },
    "validation.forbidden_chars": {
        "en": "Hostname contains forbidden characters",
        "zh": "域名包含非法字符",
    },
    "validation.too_long": {
        "en": "Hostname is longer than 253 characters",
        "zh": "域名长度超过 253 个字符",
    },
    "validation.idna_error": {
        "en": "IDNA encoding failed: {error}",
        "zh": "IDNA 编码失败: {error}",
    },
    "validation.invalid_ip": {
        "en": "'{value}' is not a valid IP address",
        "zh": "'{value}' 不是有效的 IP 地址",
    },
    "validation.invalid_port": {
        "en": "Port must be between 1 and 65535, got '{value}'",
        "zh": "端口必须在 1 到 65535 之间，当前为 '{value}'",
    },
    "validation.invalid_integer": {
        "en": "{field} must be an integer, got '{value}'",
        "zh": "{field} 必须是整数，当前为 '{value}'",
    },
    "validation.negative": {
        "en": "{field} must not be negative",
        "zh": "{field} 不能为负数",
    },
    "validation.invalid_bool": {
        "en": "{field} must be true or false, got '{value}'",
        "zh": "{field} 必须是 true 或 false，当前为 '{value}'",
    },
    "validation.invalid_record_type": {
        "en": "Record type must be A or CNAME, got '{value}'",
        "zh": "记录类型必须是 A 或 CNAME，当前为 '{value}'",
    },
    "validation.unknown_field": {
        "en": "Unknown field '{field}'. Editable: {fields}",
        "zh": "未知字段 '{field}'。可编辑字段: {fields}",
    },

    # Disconnect reasons
    "reason.timeout": {
        "en": "connection timed out",
        "zh": "连接超时",
    },
    "reason.refused": {
        "en": "connection refused",
        "zh": "连接被拒绝",
    },
    "reason.unreachable": {
        "en": "host unreachable",
        "zh": "主机不可达",
    },
    "reason.other": {
        "en": "connection failed",
        "zh": "连接失败",
    },

    # Digest report
    "report.title_scheduled": {
        "en": "Scheduled check report",
        "zh": "定时检测报告",
    },
    "report.title_manual": {
        "en": "Manual check report",
        "zh": "手动检测报告",
    },
    "report.summary": {
        "en": "Checked {checked} domain(s) at {time}",
        "zh": "于 {time} 检测了 {checked} 个域名",
    },
    "report.switched": {
        "en": "Switched ({count})",
        "zh": "已切换 ({count})",
    },
    "report.switched_line": {
        "en": "{domain} → {record_type} {content} (forward {forward}, ISP {isp}, weight {weight})",
        "zh": "{domain} → {record_type} {content} (转发 {forward}，线路 {isp}，权重 {weight})",
    },
    "report.failed": {
        "en": "Check failed ({count}), consecutive failures: {failures}",
        "zh": "检测失败 ({count})，连续失败次数: {failures}",
    },
    "report.failed_line": {
        "en": "{domain}: {error}",
        "zh": "{domain}: {error}",
    },
    "report.disconnected": {
        "en": "Disconnected ({count})",
        "zh": "连接中断 ({count})",
    },
    "report.disconnected_line": {
        "en": "{domain}: {reason}",
        "zh": "{domain}: {reason}",
    },
    "report.banned": {
        "en": "Banned for 24h ({count})",
        "zh": "已封禁 24 小时 ({count})",
    },
    "report.banned_line": {
        "en": "{forward} (ISP {isp}, weight {weight}) of {domain}, until {until}",
        "zh": "{domain} 的转发 {forward} (线路 {isp}，权重 {weight})，封禁至 {until}",
    },
    "report.no_forward": {
        "en": "URGENT: no available forward ({count})",
        "zh": "紧急: 无可用转发 ({count})",
    },
    "report.no_forward_configured": {
        "en": "{domain}: every forward is banned or unreachable",
        "zh": "{domain}: 所有转发均已封禁或不可达",
    },
    "report.no_forward_missing": {
        "en": "{domain}: no forwards configured",
        "zh": "{domain}: 未配置任何转发",
    },
    "report.all_normal": {
        "en": "All {checked} checked domain(s) are normal",
        "zh": "已检测的 {checked} 个域名全部正常",
    },

    # Authorisation
    "auth.denied": {
        "en": "You are not allowed to use this bot. Your ID: {uid}",
        "zh": "你没有权限使用此机器人。你的 ID: {uid}",
    },
    "auth.super_only": {
        "en": "Only the super admin can do this",
        "zh": "只有超级管理员可以执行此操作",
    },

    # Generic command replies
    "common.usage": {
        "en": "Usage: {usage}",
        "zh": "用法: {usage}",
    },
    "common.unknown_command": {
        "en": "Unknown command. Send /help for the list of commands",
        "zh": "未知命令。发送 /help 查看命令列表",
    },
    "common.error": {
        "en": "Error: {error}",
        "zh": "错误: {error}",
    },
    "common.domain_not_found": {
        "en": "Domain {id} not found",
        "zh": "未找到域名 {id}",
    },
    "common.forward_not_found": {
        "en": "Forward {id} not found",
        "zh": "未找到转发 {id}",
    },
    "common.admin_not_found": {
        "en": "Admin {uid} not found",
        "zh": "未找到管理员 {uid}",
    },
    "common.updated": {
        "en": "{field} set to {value}",
        "zh": "{field} 已设置为 {value}",
    },
    "common.your_id": {
        "en": "Your ID: {uid}",
        "zh": "你的 ID: {uid}",
    },

    # Domains
    "domain.list_header": {
        "en": "Domains ({count})",
        "zh": "域名列表 ({count})",
    },
    "domain.list_empty": {
        "en": "No domains yet. Add one with /add_domain",
        "zh": "暂无域名。使用 /add_domain 添加",
    },
    "domain.check_on": {
        "en": "checking",
        "zh": "检测中",
    },
    "domain.check_off": {
        "en": "check disabled",
        "zh": "已停用检测",
    },
    "domain.added": {
        "en": "Domain {domain} added with id {id}",
        "zh": "已添加域名 {domain}，ID 为 {id}",
    },
    "domain.exists": {
        "en": "Domain {domain} already exists",
        "zh": "域名 {domain} 已存在",
    },
    "domain.deleted": {
        "en": "Domain {domain} and its forwards deleted",
        "zh": "已删除域名 {domain} 及其所有转发",
    },
    "domain.toggled_on": {
        "en": "Checking enabled for {domain}",
        "zh": "已启用 {domain} 的检测",
    },
    "domain.toggled_off": {
        "en": "Checking disabled for {domain}",
        "zh": "已停用 {domain} 的检测",
    },
    "domain.resolved": {
        "en": "{domain}: zone {zone_id}, record {record_id} ({record_type})",
        "zh": "{domain}: 区域 {zone_id}，记录 {record_id} ({record_type})",
    },
    "domain.record_missing": {
        "en": "No A or CNAME record named {domain} in zone {zone_id}",
        "zh": "区域 {zone_id} 中没有名为 {domain} 的 A 或 CNAME 记录",
    },

    # Forwards
    "forward.list_header": {
        "en": "Forwards of {domain} ({count})",
        "zh": "{domain} 的转发 ({count})",
    },
    "forward.list_empty": {
        "en": "{domain} has no forwards. Add one with /add_forward",
        "zh": "{domain} 暂无转发。使用 /add_forward 添加",
    },
    "forward.status_active": {
        "en": "active",
        "zh": "当前生效",
    },
    "forward.status_failed": {
        "en": "failed",
        "zh": "失败",
    },
    "forward.status_never": {
        "en": "standby",
        "zh": "备用",
    },
    "forward.banned_until": {
        "en": "banned until {until}",
        "zh": "封禁至 {until}",
    },
    "forward.banned_forever": {
        "en": "banned",
        "zh": "已封禁",
    },
    "forward.added": {
        "en": "Forward {forward} added to {domain} with id {id}",
        "zh": "已为 {domain} 添加转发 {forward}，ID 为 {id}",
    },
    "forward.exists": {
        "en": "Forward {forward} already exists on {domain}",
        "zh": "{domain} 上已存在转发 {forward}",
    },
    "forward.deleted": {
        "en": "Forward {forward} deleted",
        "zh": "已删除转发 {forward}",
    },
    "forward.banned": {
        "en": "Forward {forward} banned until {until}",
        "zh": "已封禁转发 {forward}，直至 {until}",
    },
    "forward.unbanned": {
        "en": "Forward {forward} unbanned",
        "zh": "已解封转发 {forward}",
    },

    # Import / export
    "import.empty": {
        "en": "Put the records on the lines after /import",
        "zh": "请在 /import 之后的行中附上记录",
    },
    "import.summary": {
        "en": (
            "Import finished: {domains_added} domain(s) added, {domains_updated} updated, "
            "{forwards_added} forward(s) added, {forwards_skipped} skipped"
        ),
        "zh": (
            "导入完成: 新增域名 {domains_added} 个，更新 {domains_updated} 个，"
            "新增转发 {forwards_added} 个，跳过 {forwards_skipped} 个"
        ),
    },
    "export.empty": {
        "en": "Nothing to export",
        "zh": "没有可导出的记录",
    },

    # Admins
    "admin.list_header": {
        "en": "Admins ({count})",
        "zh": "管理员 ({count})",
    },
    "admin.list_empty": {
        "en": "No admins yet. Add one with /add_admin",
        "zh": "暂无管理员。使用 /add_admin 添加",
    },
    "admin.added": {
        "en": "Admin {uid} added",
        "zh": "已添加管理员 {uid}",
    },
    "admin.exists": {
        "en": "Admin {uid} already exists",
        "zh": "管理员 {uid} 已存在",
    },
    "admin.banned": {
        "en": "Admin {uid} banned",
        "zh": "已封禁管理员 {uid}",
    },
    "admin.unbanned": {
        "en": "Admin {uid} unbanned",
        "zh": "已解封管理员 {uid}",
    },
    "admin.deleted": {
        "en": "Admin {uid} deleted",
        "zh": "已删除管理员 {uid}",
    },
    "admin.is_super": {
        "en": "The super admin is configured, not managed here",
        "zh": "超级管理员由配置文件指定，无法在此管理",
    },

    # Manual check
    "check.started": {
        "en": "Check started...",
        "zh": "开始检测...",
    },
    "check.busy": {
        "en": "A check is already running, try again when it finishes",
        "zh": "已有检测正在进行，请稍后再试",
    },
    "check.aborted": {
        "en": "Check aborted: {error}",
        "zh": "检测已中止: {error}",
    },
    "check.progress": {
        "en": "Checking [{index}/{total}] {domain}",
        "zh": "正在检测 [{index}/{total}] {domain}",
    },

    # Self-test
    "selftest.header": {
        "en": "DNS failover self-test",
        "zh": "DNS 故障切换自检",
    },
    "selftest.config_validation": {
        "en": "Configuration validation:",
        "zh": "配置校验:",
    },
    "selftest.config_valid": {
        "en": "Configuration is valid",
        "zh": "配置有效",
    },
    "selftest.config_invalid": {
        "en": "Configuration is invalid",
        "zh": "配置无效",
    },
    "selftest.warnings": {
        "en": "Warnings:",
        "zh": "警告:",
    },
    "selftest.connectivity": {
        "en": "Connectivity:",
        "zh": "连通性:",
    },
    "selftest.success": {
        "en": "Self-test passed",
        "zh": "自检通过",
    },
    "selftest.failed": {
        "en": "Self-test failed",
        "zh": "自检失败",
    },
    "selftest.duration": {
        "en": "Duration",
        "zh": "耗时",
    },

    # Help
    "help.text": {
        "en": (
            "<b>Domains</b>\n"
            "/domains - list domains\n"
            "/add_domain &lt;domain&gt; [port] - add a domain\n"
            "/delete_domain &lt;id&gt; - delete a domain and its forwards\n"
            "/toggle &lt;id&gt; - enable or disable checking\n"
            "/resolve &lt;id&gt; - look up the Cloudflare zone and record\n"
            "/set domain &lt;id&gt; &lt;field&gt; &lt;value&gt; - edit a domain\n"
            "\n<b>Forwards</b>\n"
            "/forwards &lt;domain id&gt; - list forwards\n"
            "/add_forward &lt;domain id&gt; &lt;forward&gt; [weight] [isp] [A|CNAME] - add a forward\n"
            "/delete_forward &lt;id&gt; - delete a forward\n"
            "/ban &lt;id&gt; - ban a forward\n"
            "/unban &lt;id&gt; - unban a forward\n"
            "/set forward &lt;id&gt; &lt;field&gt; &lt;value&gt; - edit a forward\n"
            "\n<b>Checks</b>\n"
            "/check - run a check now\n"
            "/export - export records\n"
            "/import - import records from the following lines\n"
            "\n<b>Admins</b> (super admin)\n"
            "/admins - list admins\n"
            "/add_admin &lt;uid&gt; [remark] - add an admin\n"
            "/ban_admin &lt;uid&gt;, /unban_admin &lt;uid&gt;, /delete_admin &lt;uid&gt;\n"
            "\n/id - show your ID"
        ),
        "zh": (
            "<b>域名</b>\n"
            "/domains - 域名列表\n"
            "/add_domain &lt;域名&gt; [端口] - 添加域名\n"
            "/delete_domain &lt;id&gt; - 删除域名及其转发\n"
            "/toggle &lt;id&gt; - 启用或停用检测\n"
            "/resolve &lt;id&gt; - 查询 Cloudflare 区域和记录\n"
            "/set domain &lt;id&gt; &lt;字段&gt; &lt;值&gt; - 修改域名\n"
            "\n<b>转发</b>\n"
            "/forwards &lt;域名 id&gt; - 转发列表\n"
            "/add_forward &lt;域名 id&gt; &lt;转发&gt; [权重] [线路] [A|CNAME] - 添加转发\n"
            "/delete_forward &lt;id&gt; - 删除转发\n"
            "/ban &lt;id&gt; - 封禁转发\n"
            "/unban &lt;id&gt; - 解封转发\n"
            "/set forward &lt;id&gt; &lt;字段&gt; &lt;值&gt; - 修改转发\n"
            "\n<b>检测</b>\n"
            "/check - 立即检测\n"
            "/export - 导出记录\n"
            "/import - 导入后续行中的记录\n"
            "\n<b>管理员</b> (超级管理员)\n"
            "/admins - 管理员列表\n"
            "/add_admin &lt;uid&gt; [备注] - 添加管理员\n"
            "/ban_admin &lt;uid&gt;, /unban_admin &lt;uid&gt;, /delete_admin &lt;uid&gt;\n"
            "\n/id - 显示你的 ID"
        ),
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'validation.empty_input')
        language: Language code ('en' or 'zh'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.
        If the language is not found, falls back to DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('reason.refused', 'en')
        'connection refused'
        >>> get_message('common.your_id', 'zh', uid=42)
        '你的 ID: 42'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language)
    if message is None:
        message = translations.get(DEFAULT_LANGUAGE)

    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Missing placeholder argument: keep the template
            pass

    return message


def get_all_message_keys() -> set[str]:
    """Get all available message keys."""
    return set(TRANSLATIONS.keys())


def has_translation(key: str, language: str) -> bool:
    """Check if a translation exists for a key and language."""
    translations = TRANSLATIONS.get(key)
    if translations is None:
        return False
    return language in translations


def get_missing_translations(language: str) -> set[str]:
    """
    Get all message keys that are missing translations for a language.

    Args:
        language: The language code to check

    Returns:
        Set of message keys missing translations for the specified language.
    """
    missing = set()
    for key, translations in TRANSLATIONS.items():
        if language not in translations:
            missing.add(key)
    return missing


def validate_translations() -> dict[str, set[str]]:
    """
    Validate that all languages have all translations.

    Returns:
        Dictionary mapping language codes to sets of missing message keys.
        Empty sets indicate complete translations.
    """
    result = {}
    for language in SUPPORTED_LANGUAGES:
        result[language] = get_missing_translations(language)
    return result
