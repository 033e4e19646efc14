"""
deploycore - Idempotent package deployments driven by an ordered convention pipeline.

A deployment runs once per process: variables are loaded, a
RunningDeployment is threaded through the conventions (extract, scripts,
substitution, transforms, web server registration), and the outcome is
written to a durable journal shared by every agent process on the host.

Example usage:
    from deploycore import deploy_package

    deployment = deploy_package("Acme.Web.1.0.0.zip", variables_file="variables.json")
    print(deployment.current_directory)
"""

__version__ = "0.1.0"
__all__ = [
    "deploy_package",
    "run_deployment",
    "RunningDeployment",
    "DeploymentJournal",
    "SystemSemaphore",
    "VariableDictionary",
    "__version__",
]


# Lazy imports to avoid loading cryptography and OTel at import time
def __getattr__(name: str):
    if name == "deploy_package":
        from deploycore.deploy import deploy_package
        return deploy_package
    if name == "run_deployment":
        from deploycore.pipeline import run_deployment
        return run_deployment
    if name == "RunningDeployment":
        from deploycore.deployment import RunningDeployment
        return RunningDeployment
    if name == "DeploymentJournal":
        from deploycore.journal import DeploymentJournal
        return DeploymentJournal
    if name == "SystemSemaphore":
        from deploycore.locking import SystemSemaphore
        return SystemSemaphore
    if name == "VariableDictionary":
        from deploycore.variables import VariableDictionary
        return VariableDictionary
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
