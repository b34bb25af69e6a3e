"""Built-in SDK variant strategies -- one per ``SdkVariantKind``."""

from typing import FrozenSet, List, Tuple

from ..models import EvaluatedProject, SdkVariant, SdkVariantKind
from .base import VariantStrategy

SYSTEM_WEB_SDK = "MSBuild.SDK.SystemWeb/4.0.104"

WEB_CONTENT_PATTERNS = [
    "wwwroot/**/*",
    "Areas/**/*.cshtml",
    "Areas/**/*.razor",
    "Views/**/*.cshtml",
    "Views/**/*.razor",
    "Pages/**/*.cshtml",
    "Pages/**/*.razor",
    "appsettings.json",
    "appsettings.*.json",
    "web.config",
]

SYSTEM_WEB_CONTENT_PATTERNS = WEB_CONTENT_PATTERNS + [
    "**/*.aspx",
    "**/*.ascx",
    "**/*.master",
    "**/*.asax",
    "**/*.ashx",
    "**/*.asmx",
    "**/*.svc",
    "**/*.cshtml",
    "**/*.vbhtml",
    "**/*.css",
    "**/*.js",
    "**/*.png",
    "**/*.jpg",
    "**/*.gif",
    "**/*.ico",
    "Content/**/*",
    "Scripts/**/*",
    "fonts/**/*",
    "Global.asax",
]


class StandardLibraryStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.STANDARD_LIBRARY

    @property
    def display_name(self) -> str:
        return "Class library / console (Microsoft.NET.Sdk)"


class WebStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.WEB

    @property
    def display_name(self) -> str:
        return "ASP.NET Core (Microsoft.NET.Sdk.Web)"

    @property
    def sdk(self) -> str:
        return "Microsoft.NET.Sdk.Web"

    @property
    def content_patterns(self) -> List[str]:
        return WEB_CONTENT_PATTERNS

    @property
    def implicit_packages(self) -> FrozenSet[str]:
        return frozenset({"microsoft.aspnetcore.app", "microsoft.aspnetcore.all"})


class WebFunctionsStrategy(VariantStrategy):
    """Azure Functions projects.

    In-process hosts (WebJobs / Microsoft.NET.Sdk.Functions) are flagged
    for isolated-worker migration; the SDK itself stays Microsoft.NET.Sdk.
    """

    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.WEB_FUNCTIONS

    @property
    def display_name(self) -> str:
        return "Azure Functions"

    @property
    def content_patterns(self) -> List[str]:
        return ["host.json", "local.settings.json"]

    def extra_properties(
        self, project: EvaluatedProject, variant: SdkVariant
    ) -> List[Tuple[str, str]]:
        props = [("AzureFunctionsVersion", project.get_property("AzureFunctionsVersion") or "v4")]
        if not variant.needs_isolated_worker and not project.has_explicit_property("OutputType"):
            props.append(("OutputType", "Exe"))
        return props

    def warnings(self, project: EvaluatedProject, variant: SdkVariant) -> List[str]:
        if variant.needs_isolated_worker:
            return [
                "In-process Azure Functions project detected; migrate to the "
                "isolated worker model (Microsoft.Azure.Functions.Worker) before "
                "targeting .NET 8 or later"
            ]
        return []


class WorkerStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.WORKER

    @property
    def display_name(self) -> str:
        return "Worker service (Microsoft.NET.Sdk.Worker)"

    @property
    def sdk(self) -> str:
        return "Microsoft.NET.Sdk.Worker"

    @property
    def content_patterns(self) -> List[str]:
        return ["appsettings.json", "appsettings.*.json"]


class BlazorWasmStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.BLAZOR_WASM

    @property
    def display_name(self) -> str:
        return "Blazor WebAssembly"

    @property
    def sdk(self) -> str:
        return "Microsoft.NET.Sdk.BlazorWebAssembly"

    @property
    def content_patterns(self) -> List[str]:
        return WEB_CONTENT_PATTERNS + ["**/*.razor"]


class WindowsDesktopStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.WINDOWS_DESKTOP

    @property
    def display_name(self) -> str:
        return "WPF / Windows Forms (Microsoft.NET.Sdk.WindowsDesktop)"

    @property
    def sdk(self) -> str:
        return "Microsoft.NET.Sdk.WindowsDesktop"


class MauiStrategy(VariantStrategy):
    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.MAUI

    @property
    def display_name(self) -> str:
        return ".NET MAUI"

    @property
    def content_patterns(self) -> List[str]:
        return ["Resources/**/*", "Platforms/**/*"]

    def extra_properties(
        self, project: EvaluatedProject, variant: SdkVariant
    ) -> List[Tuple[str, str]]:
        return [("UseMaui", "true"), ("SingleProject", "true")]

    def warnings(self, project: EvaluatedProject, variant: SdkVariant) -> List[str]:
        if any(p.lower().startswith("xamarin.") for p in project.declared_package_ids()):
            return ["Xamarin.Forms project requires manual migration of platform heads to .NET MAUI"]
        return []


class LegacyWebFrameworkStrategy(VariantStrategy):
    """ASP.NET (System.Web) projects that stay on .NET Framework."""

    @property
    def kind(self) -> SdkVariantKind:
        return SdkVariantKind.LEGACY_WEB_FRAMEWORK

    @property
    def display_name(self) -> str:
        return "ASP.NET on .NET Framework (MSBuild.SDK.SystemWeb)"

    @property
    def sdk(self) -> str:
        return SYSTEM_WEB_SDK

    @property
    def content_patterns(self) -> List[str]:
        return SYSTEM_WEB_CONTENT_PATTERNS

    @property
    def implicit_packages(self) -> FrozenSet[str]:
        return frozenset(p.lower() for p in (
            "Microsoft.AspNet.Mvc",
            "Microsoft.AspNet.WebApi",
            "Microsoft.AspNet.WebApi.Core",
            "Microsoft.AspNet.WebApi.WebHost",
            "Microsoft.AspNet.WebPages",
            "Microsoft.AspNet.Razor",
            "Microsoft.Web.Infrastructure",
            "System.Web.Helpers",
            "System.Web.Mvc",
            "System.Web.Optimization",
            "System.Web.Razor",
            "System.Web.WebPages",
            "System.Web.WebPages.Deployment",
            "System.Web.WebPages.Razor",
        ))

    @property
    def implicit_references(self) -> FrozenSet[str]:
        # System.Web.Extensions is not implicit and stays explicit.
        return frozenset(r.lower() for r in (
            "System.Web",
            "System.Web.Abstractions",
            "System.Web.ApplicationServices",
            "System.Web.DataVisualization",
            "System.Web.DynamicData",
            "System.Web.Entity",
            "System.Web.Mobile",
            "System.Web.RegularExpressions",
            "System.Web.Routing",
            "System.Web.Services",
        ))

    def extra_properties(
        self, project: EvaluatedProject, variant: SdkVariant
    ) -> List[Tuple[str, str]]:
        return [
            ("DefaultItemExcludes", "$(DefaultItemExcludes);publish\\**"),
            ("GeneratedBindingRedirectsAction", "Overwrite"),
        ]

    def warnings(self, project: EvaluatedProject, variant: SdkVariant) -> List[str]:
        return [
            "This project uses MSBuild.SDK.SystemWeb and requires 'msbuild' for "
            "building (not 'dotnet build')"
        ]

    def skips_compile_removal(self) -> bool:
        return True


BUILTIN_STRATEGIES = [
    StandardLibraryStrategy,
    WebStrategy,
    WebFunctionsStrategy,
    WorkerStrategy,
    BlazorWasmStrategy,
    WindowsDesktopStrategy,
    MauiStrategy,
    LegacyWebFrameworkStrategy,
]
