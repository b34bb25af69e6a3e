"""Static lookup tables for reference-to-package resolution.

All names are matched case-insensitively by the callers.
"""

from typing import Dict, List

# Framework assemblies that never need a package.
BUILTIN_FRAMEWORK_ASSEMBLIES = frozenset(name.lower() for name in (
    "mscorlib",
    "System",
    "System.Core",
    "System.Data",
    "System.Data.DataSetExtensions",
    "System.Deployment",
    "System.Design",
    "System.DirectoryServices",
    "System.Drawing",
    "System.Drawing.Design",
    "System.EnterpriseServices",
    "System.Management",
    "System.Messaging",
    "System.Runtime.Remoting",
    "System.Runtime.Serialization",
    "System.Runtime.Serialization.Formatters.Soap",
    "System.Security",
    "System.ServiceModel",
    "System.ServiceModel.Web",
    "System.ServiceProcess",
    "System.Transactions",
    "System.Web",
    "System.Web.Extensions",
    "System.Web.Extensions.Design",
    "System.Web.Mobile",
    "System.Web.RegularExpressions",
    "System.Web.Services",
    "System.Windows.Forms",
    "System.Xml",
    "System.Xml.Linq",
    "System.ComponentModel.Composition",
    "System.ComponentModel.DataAnnotations",
    "System.Net",
    "System.Net.Http",
    "System.Numerics",
    "System.IO.Compression",
    "System.IO.Compression.FileSystem",
    "System.Runtime.Caching",
    "System.Runtime.DurableInstancing",
    "System.ServiceModel.Activation",
    "System.ServiceModel.Activities",
    "System.ServiceModel.Channels",
    "System.ServiceModel.Discovery",
    "System.ServiceModel.Routing",
    "System.Speech",
    "System.Threading.Tasks.Dataflow",
    "System.Web.Abstractions",
    "System.Configuration",
    "System.Configuration.Install",
    "System.IdentityModel",
    "System.IdentityModel.Selectors",
    "System.Activities",
    "System.Activities.Core.Presentation",
    "System.Activities.DurableInstancing",
    "System.Activities.Presentation",
    "System.Data.Entity",
    "System.Data.Entity.Design",
    "System.Data.Linq",
    "System.Data.OracleClient",
    "System.Data.Services",
    "System.Data.Services.Client",
    "System.Data.Services.Design",
    "System.Data.SqlXml",
    "System.Device",
    "System.Net.Http.WebRequest",
    "System.Runtime.Serialization.Formatters",
    "System.Web.ApplicationServices",
    "System.Web.DataVisualization",
    "System.Web.DynamicData",
    "System.Web.Entity",
    "System.Web.Entity.Design",
    "System.Web.Routing",
    "System.Windows",
    "System.Workflow.Activities",
    "System.Workflow.ComponentModel",
    "System.Workflow.Runtime",
    "System.WorkflowServices",
    "System.Xaml",
    "Microsoft.Build",
    "Microsoft.Build.Engine",
    "Microsoft.Build.Framework",
    "Microsoft.Build.Tasks.Core",
    "Microsoft.Build.Utilities.Core",
    "Microsoft.CSharp",
    "Microsoft.JScript",
    "Microsoft.VisualBasic",
    "Microsoft.VisualBasic.Compatibility",
    "Microsoft.VisualBasic.Compatibility.Data",
    "Microsoft.VisualC",
    "WindowsBase",
    "PresentationCore",
    "PresentationFramework",
    "PresentationFramework.Aero",
    "PresentationFramework.Classic",
    "PresentationFramework.Luna",
    "PresentationFramework.Royale",
    "ReachFramework",
    "System.Printing",
    "UIAutomationClient",
    "UIAutomationClientsideProviders",
    "UIAutomationProvider",
    "UIAutomationTypes",
    "WindowsFormsIntegration",
))

# Expected strong-name tokens for packages whose identity we can vouch for.
PUBLIC_KEY_TOKENS: Dict[str, str] = {
    "newtonsoft.json": "30ad4fe6b2a6aeed",
    "system.data.sqlclient": "b03f5f7f11d50a3a",
    "microsoft.entityframeworkcore": "adb9793829ddae60",
    "entityframework": "b77a5c561934e089",
}

# Assembly version -> package version, where they differ.
ASSEMBLY_VERSION_MAP: Dict[str, Dict[str, str]] = {
    "newtonsoft.json": {
        "11.0.0.0": "11.0.2",
        "12.0.0.0": "12.0.3",
        "13.0.0.0": "13.0.3",
    },
}

# package -> {framework pattern -> assemblies}.  Patterns are an exact
# moniker, a family (netframework / netcoreapp / net / netstandard) or "*".
FRAMEWORK_PACKAGE_MAP: Dict[str, Dict[str, List[str]]] = {
    "Microsoft.Data.SqlClient": {"*": ["Microsoft.Data.SqlClient"]},
    "System.Data.SqlClient": {
        "netcoreapp": ["System.Data.SqlClient"],
        "net": ["System.Data.SqlClient"],
        "netstandard": ["System.Data.SqlClient"],
    },
    "System.Configuration.ConfigurationManager": {
        "netcoreapp": ["System.Configuration.ConfigurationManager"],
        "net": ["System.Configuration.ConfigurationManager"],
        "netstandard": ["System.Configuration.ConfigurationManager"],
    },
    "System.ComponentModel.Annotations": {
        "netstandard": ["System.ComponentModel.Annotations"],
    },
    "System.ServiceModel.Http": {
        "netcoreapp": ["System.ServiceModel.Http"],
        "net": ["System.ServiceModel.Http"],
    },
    "System.ServiceModel.Primitives": {
        "netcoreapp": ["System.ServiceModel.Primitives"],
        "net": ["System.ServiceModel.Primitives"],
    },
    "System.Drawing.Common": {
        "netcoreapp": ["System.Drawing.Common"],
        "net": ["System.Drawing.Common"],
    },
    "Microsoft.AspNet.WebApi.Client": {"*": ["System.Net.Http.Formatting"]},
    "Microsoft.AspNet.WebApi.Core": {"netframework": ["System.Web.Http"]},
    "Microsoft.AspNet.WebApi.WebHost": {"netframework": ["System.Web.Http.WebHost"]},
    "Microsoft.AspNet.Mvc": {
        "netframework": ["System.Web.Mvc", "System.Web.Helpers", "System.Web.WebPages"],
    },
    "Microsoft.AspNet.Razor": {"netframework": ["System.Web.Razor"]},
}

# Well-known package -> assemblies it ships.  Used for validation and for
# the offline reverse lookup.
PACKAGE_ASSEMBLIES: Dict[str, List[str]] = {
    "Newtonsoft.Json": ["Newtonsoft.Json"],
    "EntityFramework": ["EntityFramework", "EntityFramework.SqlServer", "EntityFramework.SqlServerCompact"],
    "Microsoft.EntityFrameworkCore": [
        "Microsoft.EntityFrameworkCore",
        "Microsoft.EntityFrameworkCore.Abstractions",
        "Microsoft.EntityFrameworkCore.Relational",
    ],
    "Microsoft.EntityFrameworkCore.SqlServer": ["Microsoft.EntityFrameworkCore.SqlServer"],
    "Microsoft.EntityFrameworkCore.Design": ["Microsoft.EntityFrameworkCore.Design"],
    "NUnit": ["nunit.framework"],
    "xunit.core": ["xunit.core", "xunit.abstractions"],
    "xunit.assert": ["xunit.assert"],
    "MSTest.TestFramework": [
        "Microsoft.VisualStudio.TestPlatform.TestFramework",
        "Microsoft.VisualStudio.TestPlatform.TestFramework.Extensions",
        "Microsoft.VisualStudio.QualityTools.UnitTestFramework",
    ],
    "MSTest.TestAdapter": [
        "Microsoft.VisualStudio.TestPlatform.MSTest.TestAdapter",
        "Microsoft.VisualStudio.TestPlatform.MSTestAdapter.PlatformServices",
    ],
    "Moq": ["Moq"],
    "Castle.Core": ["Castle.Core"],
    "AutoMapper": ["AutoMapper"],
    "log4net": ["log4net"],
    "NLog": ["NLog"],
    "Serilog": ["Serilog"],
    "Microsoft.AspNet.WebApi.Core": ["System.Web.Http"],
    "Microsoft.AspNet.WebApi.Client": ["System.Net.Http.Formatting"],
    "Microsoft.AspNet.WebApi.WebHost": ["System.Web.Http.WebHost"],
    "Microsoft.AspNet.Mvc": ["System.Web.Mvc"],
    "Microsoft.AspNet.Razor": ["System.Web.Razor"],
    "Microsoft.AspNet.WebPages": [
        "System.Web.WebPages",
        "System.Web.WebPages.Deployment",
        "System.Web.WebPages.Razor",
        "System.Web.Helpers",
    ],
    "System.Data.SqlClient": ["System.Data.SqlClient"],
    "Microsoft.Data.SqlClient": ["Microsoft.Data.SqlClient"],
    "System.Configuration.ConfigurationManager": ["System.Configuration.ConfigurationManager"],
    "System.Drawing.Common": ["System.Drawing.Common"],
    "System.Security.Cryptography.Xml": ["System.Security.Cryptography.Xml"],
    "System.Security.Permissions": ["System.Security.Permissions"],
    "AWSSDK.Core": ["AWSSDK.Core"],
    "AWSSDK.S3": ["AWSSDK.S3"],
    "RabbitMQ.Client": ["RabbitMQ.Client"],
    "StackExchange.Redis": ["StackExchange.Redis", "StackExchange.Redis.StrongName"],
    "protobuf-net": ["protobuf-net", "protobuf-net.Core"],
    "Grpc.Core": ["Grpc.Core", "Grpc.Core.Api"],
    "Azure.Storage.Blobs": ["Azure.Storage.Blobs"],
    "Azure.Core": ["Azure.Core"],
    "Dapper": ["Dapper"],
    "FluentValidation": ["FluentValidation"],
    "MediatR": ["MediatR", "MediatR.Contracts"],
    "Polly": ["Polly"],
    "Unity.Container": ["Unity.Container", "Unity.Abstractions"],
    "Ninject": ["Ninject"],
    "SimpleInjector": ["SimpleInjector"],
    "Autofac": ["Autofac"],
    "StructureMap": ["StructureMap"],
    "CommonServiceLocator": ["CommonServiceLocator", "Microsoft.Practices.ServiceLocation"],
    "Microsoft.Extensions.DependencyInjection": [
        "Microsoft.Extensions.DependencyInjection",
        "Microsoft.Extensions.DependencyInjection.Abstractions",
    ],
    "Microsoft.Extensions.Logging": [
        "Microsoft.Extensions.Logging",
        "Microsoft.Extensions.Logging.Abstractions",
    ],
    "RestSharp": ["RestSharp"],
    "Refit": ["Refit"],
    "System.IdentityModel.Tokens.Jwt": ["System.IdentityModel.Tokens.Jwt"],
    "Microsoft.IdentityModel.Tokens": [
        "Microsoft.IdentityModel.Tokens",
        "Microsoft.IdentityModel.Logging",
        "Microsoft.IdentityModel.JsonWebTokens",
    ],
}

# Latest stable versions known offline.  Used when a reference carries no
# version and no registry is reachable.
DEFAULT_PACKAGE_VERSIONS: Dict[str, str] = {
    "newtonsoft.json": "13.0.3",
    "entityframework": "6.4.4",
    "microsoft.entityframeworkcore": "8.0.0",
    "microsoft.data.sqlclient": "5.1.5",
    "system.data.sqlclient": "4.8.6",
    "system.configuration.configurationmanager": "8.0.0",
    "system.componentmodel.annotations": "5.0.0",
    "system.servicemodel.http": "6.2.0",
    "system.servicemodel.primitives": "6.2.0",
    "system.drawing.common": "8.0.0",
    "microsoft.aspnet.webapi.client": "6.0.0",
    "microsoft.aspnet.webapi.core": "5.3.0",
    "microsoft.aspnet.webapi.webhost": "5.3.0",
    "microsoft.aspnet.mvc": "5.3.0",
    "microsoft.aspnet.razor": "3.3.0",
    "nunit": "3.14.0",
    "moq": "4.20.70",
    "log4net": "2.0.15",
    "nlog": "5.2.8",
    "serilog": "3.1.1",
    "dapper": "2.1.28",
    "automapper": "12.0.1",
    "polly": "8.2.1",
    "autofac": "7.1.0",
}

WILDCARD_VERSION = "*"
