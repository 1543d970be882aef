"""
Pydantic v2 data models for the Syntropy manager.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class InterfaceType(str, Enum):
    CLI = "cli"
    WEB = "web"
    DESKTOP = "desktop"
    MOBILE = "mobile"

class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def is_blocking(self) -> bool:
        return self in (Severity.ERROR, Severity.CRITICAL)

class Category(str, Enum):
    ENVIRONMENT = "environment"
    SECURITY = "security"
    PERFORMANCE = "performance"
    COMPATIBILITY = "compatibility"
    DEPENDENCIES = "dependencies"
    CONFIGURATION = "configuration"
    NETWORK = "network"
    STORAGE = "storage"

class Risk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Validation findings

class AutoFixInfo(FrozenModel):
    available: bool = True
    command: str = ""
    script: str = ""
    manual: str = ""
    risk: Risk = Risk.LOW
    backup: bool = False

class ValidationItem(FrozenModel):
    code: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    severity: Severity
    category: Category
    field: Optional[str] = None
    expected: Optional[Any] = None
    actual: Optional[Any] = None
    suggestion: str = ""
    fixable: bool = False
    auto_fix: Optional[AutoFixInfo] = None
    timestamp: Optional[datetime] = None

    @field_validator("auto_fix")
    @classmethod
    def validate_auto_fix(cls, v: Optional[AutoFixInfo]) -> Optional[AutoFixInfo]:
        if v is not None and not (v.command or v.script or v.manual):
            raise ValueError("auto_fix needs a command, script or manual instruction")
        return v


# Result sections

class EnvironmentInfo(BaseModel):
    os: str = ""
    os_version: str = ""
    architecture: str = Field("", validation_alias=AliasChoices("architecture", "arch"))
    kernel_version: str = ""
    has_admin_rights: bool = False
    powershell_ver: str = ""
    available_disk_gb: float = 0.0
    has_internet: bool = False
    home_dir: str = ""
    temp_dir: str = ""
    path_separator: str = ""
    environment_vars: Dict[str, str] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)
    limitations: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)

class SystemResources(BaseModel):
    total_memory_gb: float = 0.0
    available_mem_gb: float = 0.0
    used_memory_gb: float = 0.0
    cpu_cores: int = 0
    cpu_model: str = ""
    cpu_speed: float = 0.0
    disk_space_gb: float = 0.0
    total_disk_space_gb: float = 0.0
    network_speed: float = 0.0
    gpu_memory: float = 0.0
    gpu_model: str = ""
    load_average: List[float] = Field(default_factory=list)

class Dependency(FrozenModel):
    name: str
    version: str = ""
    current: str = ""
    status: Literal["installed", "outdated", "missing", "error"] = "missing"
    required: bool = False
    installable: bool = False
    install_cmd: str = ""
    check_cmd: str = ""
    path: str = ""

class Feature(FrozenModel):
    name: str
    description: str = ""
    available: bool = True
    required: bool = False
    version: str = ""
    enabled: bool = True

class KnownIssue(FrozenModel):
    id: str
    description: str
    severity: Literal["low", "medium", "high", "critical"]
    os: str = "all"
    version: str = "all"
    workaround: str = ""
    fixed: bool = False
    fixed_in: str = ""

class Workaround(FrozenModel):
    id: str
    description: str
    os: str = "all"
    version: str = "all"
    command: str = ""
    script: str = ""
    manual: str = ""
    risk: Risk = Risk.LOW
    reversible: bool = True

class Compatibility(BaseModel):
    supported_os: List[str] = Field(default_factory=list)
    min_os_version: Dict[str, str] = Field(default_factory=dict)
    recommended_os: List[str] = Field(default_factory=list)
    architecture: List[str] = Field(default_factory=list)
    dependencies: List[Dependency] = Field(default_factory=list)
    optional_features: List[Feature] = Field(default_factory=list)
    known_issues: List[KnownIssue] = Field(default_factory=list)
    workarounds: List[Workaround] = Field(default_factory=list)

class SecurityCheck(BaseModel):
    encryption_available: bool = False
    secure_random: bool = False
    key_generation: bool = False
    file_permissions: bool = False
    network_security: bool = False
    vulnerabilities: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    compliance: List[str] = Field(default_factory=list)

class Benchmark(FrozenModel):
    name: str
    description: str
    score: float
    duration: float  # seconds
    throughput: float = 0.0
    latency: float = 0.0
    status: str = "completed"

class PerformanceCheck(BaseModel):
    disk_io_performance: float = 0.0
    network_performance: float = 0.0
    memory_performance: float = 0.0
    cpu_performance: float = 0.0
    overall_score: float = 0.0
    bottlenecks: List[str] = Field(default_factory=list)
    optimizations: List[str] = Field(default_factory=list)
    benchmarks: List[Benchmark] = Field(default_factory=list)

class ValidationResult(BaseModel):
    valid: bool = False
    warnings: List[ValidationItem] = Field(default_factory=list)
    errors: List[ValidationItem] = Field(default_factory=list)
    environment: Optional[EnvironmentInfo] = None
    resources: Optional[SystemResources] = None
    compatibility: Optional[Compatibility] = None
    security: Optional[SecurityCheck] = None
    performance: Optional[PerformanceCheck] = None
    timestamp: Optional[datetime] = None
    duration: float = 0.0
    interface: str = ""
    version: str = "1.0.0"

    def add(self, item: ValidationItem) -> None:
        """Route a finding to errors or warnings by severity."""
        if item.severity.is_blocking:
            self.errors.append(item)
        else:
            self.warnings.append(item)

    def seal(self) -> "ValidationResult":
        self.valid = not self.errors
        return self


# Requests

class ValidationOptions(FrozenModel):
    skip_optional: bool = False
    auto_fix: bool = False
    detailed: bool = False
    categories: List[str] = Field(default_factory=list)
    exclude_categories: List[str] = Field(default_factory=list)
    timeout: int = Field(0, ge=0, validation_alias=AliasChoices("timeout", "timeout_s"))
    parallel: bool = False

class ValidationRequest(FrozenModel):
    type: str = "environment"
    options: ValidationOptions = Field(default_factory=ValidationOptions)
    environment: Optional[EnvironmentInfo] = None
    interface: InterfaceType = InterfaceType.CLI
    user_id: str = ""
    session_id: str = ""
    custom_data: Dict[str, Any] = Field(default_factory=dict)


# Setup configuration

class ManagerDirectories(FrozenModel):
    config: str
    keys: str
    logs: str
    cache: str
    backups: str

class DefaultPaths(FrozenModel):
    manager_config: str
    owner_key: str
    owner_pub: str

class DatabaseConfig(FrozenModel):
    type: str = "sqlite"
    host: str = ""
    port: int = 0
    name: str = ""
    username: str = ""
    ssl_mode: str = "disable"

class ManagerConfig(FrozenModel):
    home_dir: str
    log_level: str = "info"
    api_endpoint: str = "http://localhost:8080"
    directories: ManagerDirectories
    default_paths: DefaultPaths
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

class OwnerKey(FrozenModel):
    type: str = ""
    algorithm: str = ""
    path: str = ""
    public_key: str = ""
    created_at: Optional[datetime] = None
    size: int = 0

class EnvironmentConfig(FrozenModel):
    os: str = ""
    architecture: str = ""
    home_dir: str = ""
    variables: Dict[str, str] = Field(default_factory=dict)
    features: List[str] = Field(default_factory=list)

class InterfaceConfig(FrozenModel):
    type: str
    theme: str = "default"
    language: str = "en"
    settings: Dict[str, Any] = Field(default_factory=dict)
    permissions: List[str] = Field(default_factory=list)

class SecurityConfig(FrozenModel):
    encryption_algorithm: str = "AES-256-GCM"
    key_rotation_days: int = 90
    allowed_ips: List[str] = Field(default_factory=list)
    ssl_enabled: bool = True
    cert_path: str = ""

class NetworkConfig(FrozenModel):
    port: int = 8080
    host: str = "localhost"
    endpoints: List[str] = Field(default_factory=list)
    timeout: int = 30
    retries: int = 3
    compression: bool = True

class ConfigMetadata(FrozenModel):
    version: str = "1.0.0"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: str = ""
    interface: str = ""
    environment: str = ""
    checksum: str = ""

class SetupConfig(FrozenModel):
    manager: ManagerConfig
    owner_key: OwnerKey = Field(default_factory=OwnerKey)
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    interface: InterfaceConfig
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    metadata: ConfigMetadata = Field(default_factory=ConfigMetadata)


# Config service requests

class ConfigOptions(FrozenModel):
    force: bool = False
    backup: bool = False
    validate_config: bool = Field(False, validation_alias=AliasChoices("validate", "validate_config"))
    encrypt: bool = False
    format: str = "yaml"
    include_defaults: bool = True
    categories: List[str] = Field(default_factory=list)
    exclude_sensitive: bool = False

class ConfigRequest(FrozenModel):
    type: str = "setup"
    options: ConfigOptions = Field(default_factory=ConfigOptions)
    environment: Optional[EnvironmentInfo] = None
    interface: InterfaceType = InterfaceType.CLI
    user_id: str = ""
    session_id: str = ""
    template: str = ""
    config: Optional[SetupConfig] = None
    custom_data: Dict[str, Any] = Field(default_factory=dict)

class ConfigBackup(FrozenModel):
    id: str = Field(..., pattern=r"^[A-Za-z0-9_.-]+$")
    name: str
    description: str = ""
    config: Optional[SetupConfig] = None
    timestamp: datetime
    size: int = 0
    checksum: str = ""
    encrypted: bool = False
    compressed: bool = True
    metadata: Dict[str, Any] = Field(default_factory=dict)

class ConfigSummary(FrozenModel):
    id: str
    name: str
    type: str = "setup"
    interface: str = ""
    environment: str = ""
    version: str = ""
    created_at: datetime
    updated_at: datetime
    size: int = 0
    checksum: str = ""
    status: str = "active"

class Pagination(FrozenModel):
    page: int = Field(1, ge=1)
    page_size: int = Field(10, ge=1, le=500)
    total: int = 0

class SortOptions(FrozenModel):
    field: Literal["created_at", "name", "size", "interface"] = "created_at"
    order: Literal["asc", "desc"] = "desc"

class BackupFilter(FrozenModel):
    interface: str = ""
    user_id: str = ""
    session_id: str = ""

class RestoreOptions(FrozenModel):
    force: bool = False
    backup: bool = False
    validate_config: bool = Field(False, validation_alias=AliasChoices("validate", "validate_config"))
    selective: bool = False
    categories: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    dry_run: bool = False

class ConfigRestoreRequest(FrozenModel):
    backup_id: str = Field(..., min_length=1)
    options: RestoreOptions = Field(default_factory=RestoreOptions)
    user_id: str = ""
    session_id: str = ""
    custom_data: Dict[str, Any] = Field(default_factory=dict)

class RestoreOutcome(FrozenModel):
    config: SetupConfig
    backup: Optional[ConfigBackup] = None
    warnings: List[str] = Field(default_factory=list)
    config_path: str = ""
    dry_run: bool = False


# Templates

class TemplateVariable(FrozenModel):
    name: str
    type: str = "string"
    default: Optional[Any] = None
    required: bool = False
    description: str = ""
    validation: str = ""
    options: List[str] = Field(default_factory=list)
    sensitive: bool = False

class TemplateValidation(FrozenModel):
    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    defaults: Dict[str, Any] = Field(default_factory=dict)

class ConfigTemplate(FrozenModel):
    name: str
    description: str
    version: str = "1.0.0"
    interface: str
    environment: str
    content: str
    variables: List[TemplateVariable] = Field(default_factory=list)
    validation: TemplateValidation = Field(default_factory=TemplateValidation)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Setup

class SetupOptions(FrozenModel):
    force: bool = False
    install_service: bool = False
    config_path: str = ""
    home_dir: str = ""
    encrypt: bool = False
    passphrase: Optional[str] = Field(None, exclude=True, repr=False)
    custom_options: Dict[str, Any] = Field(default_factory=dict)

class SetupRequest(FrozenModel):
    options: SetupOptions = Field(default_factory=SetupOptions)
    environment: Optional[EnvironmentInfo] = None
    interface: InterfaceType = InterfaceType.CLI
    user_id: str = ""
    session_id: str = ""
    custom_data: Dict[str, Any] = Field(default_factory=dict)

class SetupState(str, Enum):
    INIT = "INIT"
    ENV_OK = "ENV_OK"
    CFG_BUILT = "CFG_BUILT"
    DIRS_MADE = "DIRS_MADE"
    KEY_WRITTEN = "KEY_WRITTEN"
    CFG_WRITTEN = "CFG_WRITTEN"
    SERVICE_INSTALLED = "SERVICE_INSTALLED"
    FINAL_OK = "FINAL_OK"
    FAILED = "FAILED"

class StepOutcome(FrozenModel):
    step: str
    state: SetupState
    success: bool
    duration: float = 0.0
    detail: str = ""

class SetupResult(BaseModel):
    success: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0
    config_path: str = ""
    environment: str = ""
    interface: str = ""
    options: Optional[SetupOptions] = None
    config: Optional[SetupConfig] = None
    message: str = ""
    state: SetupState = SetupState.INIT
    failed_step: Optional[str] = None
    error: Optional[str] = None
    steps: List[StepOutcome] = Field(default_factory=list)

class HistoryEntry(FrozenModel):
    id: str
    timestamp: datetime
    action: Literal["setup", "reset", "restore"]
    status: Literal["success", "failed"]
    interface: str = ""
    user_id: str = ""
    duration: float = 0.0
    config_path: str = ""
    detail: str = ""


# Response envelopes

class ErrorDetail(FrozenModel):
    code: str
    message: str
    details: str = ""
    field: str = ""

class ValidationResponse(BaseModel):
    success: bool = True
    result: Optional[ValidationResult] = None
    error: Optional[ErrorDetail] = None
    message: str = ""
    code: int = 200

class ConfigResponse(BaseModel):
    success: bool = True
    config: Optional[SetupConfig] = None
    metadata: Optional[ConfigMetadata] = None
    error: Optional[ErrorDetail] = None
    message: str = ""
    code: int = 200

class SetupResponse(BaseModel):
    success: bool = True
    result: Optional[SetupResult] = None
    error: Optional[ErrorDetail] = None
    message: str = ""
    code: int = 200
