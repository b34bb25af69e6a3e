"""Static rules for the item and property migration pass."""

import re

# Item metadata that changes build behavior.  An implicitly included item
# carrying any of these is emitted in ``Update`` form instead of dropped.
CUSTOM_METADATA = (
    "CopyToOutputDirectory",
    "CopyToPublishDirectory",
    "Link",
    "DependentUpon",
    "Generator",
    "LastGenOutput",
    "CustomToolNamespace",
    "SubType",
    "DesignTime",
    "AutoGen",
    "DesignTimeSharedInput",
    "Private",
)

PROJECT_REFERENCE_METADATA = (
    "Private",
    "IncludeAssets",
    "ExcludeAssets",
    "PrivateAssets",
    "ReferenceOutputAssembly",
    "OutputItemType",
    "SetTargetFramework",
)

COM_REFERENCE_METADATA = (
    "Guid",
    "VersionMajor",
    "VersionMinor",
    "Lcid",
    "WrapperTool",
    "Isolated",
    "EmbedInteropTypes",
    "Private",
    "HintPath",
)

# Copied to the main PropertyGroup only when declared explicitly.
BASIC_PROPERTIES = (
    "OutputType",
    "AssemblyName",
    "RootNamespace",
    "LangVersion",
    "Nullable",
    "ImplicitUsings",
)

STRONG_NAMING_PROPERTIES = ("SignAssembly", "AssemblyOriginatorKeyFile", "DelaySign")

FRAMEWORK_PROPERTIES = (
    "TargetFramework",
    "TargetFrameworks",
    "TargetFrameworkVersion",
    "TargetFrameworkProfile",
    "TargetFrameworkIdentifier",
)

# Legacy-only properties with no meaning in SDK-style projects.
PROPERTIES_TO_REMOVE = frozenset(p.lower() for p in (
    "Configuration",
    "Platform",
    "ProjectGuid",
    "ProjectTypeGuids",
    "FileAlignment",
    "AppDesignerFolder",
    "SchemaVersion",
    "ProductVersion",
    "OldToolsVersion",
    "UpgradeBackupLocation",
    "PublishUrl",
    "Install",
    "InstallFrom",
    "UpdateEnabled",
    "UpdateMode",
    "UpdateInterval",
    "UpdateIntervalUnits",
    "UpdatePeriodically",
    "UpdateRequired",
    "MapFileExtensions",
    "ApplicationRevision",
    "ApplicationVersion",
    "IsWebBootstrapper",
    "UseApplicationTrust",
    "BootstrapperEnabled",
    "NuGetPackageImportStamp",
    "RestorePackages",
    "SolutionDir",
    "Deterministic",
    "AutoGenerateBindingRedirects",
    "ErrorReport",
    "StrongNameKeyFile",
    "TargetFrameworkVersion",
    "TargetFrameworkProfile",
    "TargetFrameworkIdentifier",
    "FileUpgradeFlags",
    "WcfConfigValidationEnabled",
    "UseIISExpress",
    "IISExpressSSLPort",
    "IISExpressAnonymousAuthentication",
    "IISExpressWindowsAuthentication",
    "IISExpressUseClassicPipelineMode",
    "UseGlobalApplicationHostFile",
    "MvcBuildViews",
    "Use64BitIISExpress",
))

# Per-configuration properties kept in conditional PropertyGroups.
CONDITIONAL_PROPERTIES = (
    "DefineConstants",
    "PlatformTarget",
    "Prefer32Bit",
    "AllowUnsafeBlocks",
    "DebugType",
    "DebugSymbols",
    "Optimize",
    "WarningLevel",
    "TreatWarningsAsErrors",
    "NoWarn",
    "DocumentationFile",
    "OutputPath",
    "CodeAnalysisRuleSet",
    "RunCodeAnalysis",
)

# Output paths matching the SDK default layout are dropped.
DEFAULT_OUTPUT_PATH = re.compile(r"^bin[\\/][^\\/]*[\\/]?$", re.IGNORECASE)

ITEM_TYPES_TO_REMOVE = frozenset(t.lower() for t in (
    "BootstrapperPackage",
    "AppDesigner",
    "VisualStudio",
    "FlavorProperties",
    "Service",
))

# Removed only when they carry no metadata.
EMPTY_ITEM_TYPES_TO_REMOVE = frozenset(t.lower() for t in ("Folder", "WCFMetadata"))

# Handled by dedicated sections of the migrated project.
REFERENCE_ITEM_TYPES = frozenset(t.lower() for t in (
    "Reference",
    "PackageReference",
    "ProjectReference",
    "COMReference",
))

ASSEMBLY_INFO_FILES = frozenset(f.lower() for f in (
    "AssemblyInfo.cs",
    "AssemblyInfo.vb",
    "GlobalAssemblyInfo.cs",
    "GlobalAssemblyInfo.vb",
    "SharedAssemblyInfo.cs",
    "SharedAssemblyInfo.vb",
    "CommonAssemblyInfo.cs",
    "CommonAssemblyInfo.vb",
))

SDK_IMPORTS = (
    "Microsoft.Common.props",
    "Microsoft.CSharp.targets",
    "Microsoft.VisualBasic.targets",
    "Microsoft.FSharp.targets",
    "Microsoft.Common.targets",
    "Microsoft.WebApplication.targets",
    "Microsoft.NET.Sdk.props",
    "Microsoft.NET.Sdk.targets",
    "System.Data.Entity.Design.targets",
    "EntityFramework.targets",
    "Microsoft.Bcl.Build.targets",
    "Microsoft.TestPlatform.targets",
    "VSTest.targets",
)

SDK_TARGETS = frozenset(t.lower() for t in (
    "Build", "Rebuild", "Clean", "Compile", "Publish",
    "BeforeBuild", "AfterBuild", "BeforeRebuild", "AfterRebuild",
    "BeforeClean", "AfterClean", "BeforePublish", "AfterPublish",
    "BeforeCompile", "AfterCompile", "CoreCompile",
    "PrepareForBuild", "PrepareForRun", "PrepareResources",
    "AssignTargetPaths", "GetTargetPath", "GetCopyToOutputDirectoryItems",
))

# packages.config era restore check; PackageReference makes it obsolete.
NUGET_IMPORT_TARGET = "EnsureNuGetPackageBuildImports"

# Directories never scanned for stray source files.
EXCLUDED_SOURCE_DIRS = frozenset(("obj", "bin", "publish"))

SOURCE_EXTENSIONS = {
    ".csproj": (".cs",),
    ".vbproj": (".vb",),
    ".fsproj": (".fs",),
}


def _file_name(path: str) -> str:
    return path.replace("\\", "/").rsplit("/", 1)[-1]


def is_sdk_import(path: str) -> bool:
    name = _file_name(path).lower()
    return any(name == known.lower() for known in SDK_IMPORTS)


def is_package_import(path: str) -> bool:
    """Imports of package build assets from a packages.config folder."""
    normalized = "/" + path.replace("\\", "/").lower()
    return "/packages/" in normalized


def is_sdk_target(name: str) -> bool:
    return name.lower() in SDK_TARGETS


def is_assembly_info(path: str) -> bool:
    return _file_name(path).lower() in ASSEMBLY_INFO_FILES
