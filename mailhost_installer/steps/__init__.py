from .step_10_preflight import PreflightStep
from .step_20_prepare_system import PrepareSystemStep
from .step_30_install_packages import InstallPackagesStep
from .step_40_tls_certificates import TlsCertificatesStep
from .step_45_vmail_layout import VmailLayoutStep
from .step_50_configure_dovecot import ConfigureDovecotStep
from .step_55_configure_opendkim import ConfigureOpenDkimStep
from .step_60_configure_milters import ConfigureMiltersStep
from .step_70_configure_postfix import ConfigurePostfixStep
from .step_75_firewall import FirewallStep
from .step_80_enable_services import EnableServicesStep
from .step_85_seed_postmaster import SeedPostmasterStep
from .step_90_dns_report import DnsReportStep

__all__ = [
    "PreflightStep",
    "PrepareSystemStep",
    "InstallPackagesStep",
    "TlsCertificatesStep",
    "VmailLayoutStep",
    "ConfigureDovecotStep",
    "ConfigureOpenDkimStep",
    "ConfigureMiltersStep",
    "ConfigurePostfixStep",
    "FirewallStep",
    "EnableServicesStep",
    "SeedPostmasterStep",
    "DnsReportStep",
]
