"""Heuristic transitive dependency detection.

packages.config lists every package in the closure, direct or not.
PackageReference only needs the direct ones, so packages that are almost
certainly pulled in by another declared package are flagged
``is_transitive`` and left out of the migrated project and CPM file.
"""

import logging
from typing import Dict, FrozenSet, List

from ..models import PackageReference

logger = logging.getLogger(__name__)


def _ci(*names: str) -> FrozenSet[str]:
    return frozenset(n.lower() for n in names)


ESSENTIAL_PACKAGES = _ci(
    # Test frameworks
    "Microsoft.NET.Test.Sdk", "xunit.runner.visualstudio", "NUnit3TestAdapter",
    "MSTest.TestAdapter", "coverlet.collector", "xunit", "NUnit",
    "MSTest.TestFramework", "FluentAssertions", "Moq", "NSubstitute",
    "FakeItEasy", "Shouldly",
    # Build tooling
    "Microsoft.SourceLink.GitHub", "Microsoft.SourceLink.AzureRepos.Git",
    "Microsoft.SourceLink.GitLab", "Microsoft.SourceLink.Bitbucket.Git",
    # Analyzers
    "StyleCop.Analyzers", "SonarAnalyzer.CSharp",
    "Microsoft.CodeAnalysis.NetAnalyzers", "Microsoft.CodeAnalysis.FxCopAnalyzers",
    "Roslynator.Analyzers",
    # Framework
    "Microsoft.AspNetCore.App", "Microsoft.NETCore.App", "NETStandard.Library",
    # Commonly used directly
    "Newtonsoft.Json", "System.Text.Json",
    "Microsoft.Extensions.DependencyInjection", "Microsoft.Extensions.Logging",
    "Microsoft.Extensions.Configuration", "Microsoft.Extensions.Options",
    "Microsoft.Extensions.Http", "Microsoft.Extensions.Hosting",
    "Microsoft.EntityFrameworkCore", "Microsoft.EntityFrameworkCore.SqlServer",
    "Microsoft.EntityFrameworkCore.Sqlite", "Microsoft.EntityFrameworkCore.InMemory",
    "Dapper", "AutoMapper", "MediatR", "FluentValidation", "Polly",
    "Serilog", "NLog", "log4net",
)

COMMON_TRANSITIVE = _ci(
    "System.Runtime", "System.Collections", "System.Linq", "System.Threading",
    "System.Threading.Tasks", "System.IO", "System.Text.Encoding",
    "System.Runtime.Extensions", "System.Reflection", "System.Diagnostics.Debug",
    "System.Globalization", "System.Resources.ResourceManager", "System.Memory",
    "System.Buffers", "System.Numerics.Vectors",
    "System.Runtime.CompilerServices.Unsafe", "System.Threading.Tasks.Extensions",
    "System.ValueTuple",
)

KNOWN_DEPENDENCIES: Dict[str, FrozenSet[str]] = {
    "microsoft.aspnetcore.app": _ci(
        "Microsoft.Extensions.DependencyInjection", "Microsoft.Extensions.Logging",
        "Microsoft.Extensions.Configuration", "Newtonsoft.Json",
    ),
    "microsoft.entityframeworkcore": _ci(
        "Microsoft.EntityFrameworkCore.Abstractions", "Microsoft.EntityFrameworkCore.Analyzers",
        "Microsoft.Extensions.Caching.Memory", "Microsoft.Extensions.DependencyInjection",
        "Microsoft.Extensions.Logging",
    ),
    "nunit": _ci("NUnit.Framework"),
    "xunit": _ci(
        "xunit.abstractions", "xunit.analyzers", "xunit.assert", "xunit.core",
        "xunit.extensibility.core", "xunit.extensibility.execution",
    ),
    "moq": _ci("Castle.Core"),
    "microsoft.aspnet.mvc": _ci("Microsoft.AspNet.Razor", "Microsoft.AspNet.WebPages"),
    "microsoft.aspnet.webapi": _ci(
        "Microsoft.AspNet.WebApi.Core", "Microsoft.AspNet.WebApi.WebHost",
        "Microsoft.AspNet.WebApi.Client",
    ),
    "microsoft.aspnet.webapi.core": _ci("Microsoft.AspNet.WebApi.Client"),
    "microsoft.aspnet.webapi.client": _ci("Newtonsoft.Json"),
}


class TransitiveDependencyDetector:
    """Flag packages that are probably transitive."""

    def detect(self, packages: List[PackageReference]) -> List[PackageReference]:
        """Mark transitive packages in place and return the full list."""
        declared = {p.key for p in packages}
        has_microsoft = any(k.startswith("microsoft.") for k in declared)
        marked = 0

        for package in packages:
            key = package.key
            if key in ESSENTIAL_PACKAGES:
                continue

            if key in COMMON_TRANSITIVE:
                package.is_transitive = True
            else:
                for parent, children in KNOWN_DEPENDENCIES.items():
                    if parent in declared and parent != key and key in children:
                        package.is_transitive = True
                        logger.debug(
                            "Marked %s as transitive (dependency of %s)",
                            package.package_id, parent,
                        )
                        break
            if not package.is_transitive and key.startswith("system.") and has_microsoft:
                package.is_transitive = True

            if package.is_transitive:
                marked += 1

        logger.info(
            "Detected %d potentially transitive dependencies out of %d packages",
            marked, len(packages),
        )
        return packages
