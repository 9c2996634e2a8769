from typing import FrozenSet


class InstallationState:
    """Lifecycle states of an Installation record."""

    WAITING = "Waiting"
    COPYING_ARTIFACTS = "CopyingArtifacts"
    ENQUEUED = "Enqueued"
    INSTALLING = "Installing"
    INSTALLED = "Installed"
    KUBERNETES_INSTALLED = "KubernetesInstalled"
    ADDONS_INSTALLING = "AddonsInstalling"
    ADDONS_INSTALLED = "AddonsInstalled"
    HELM_CHART_UPDATE_FAILURE = "HelmChartUpdateFailure"
    PENDING_CHART_CREATION = "PendingChartCreation"
    OBSOLETE = "Obsolete"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    #: States in which the runtime version is already converged.
    KUBERNETES_INSTALLED_STATES: FrozenSet[str] = frozenset(
        {
            INSTALLED,
            KUBERNETES_INSTALLED,
            ADDONS_INSTALLING,
            PENDING_CHART_CREATION,
            HELM_CHART_UPDATE_FAILURE,
        }
    )


class PlanState:
    """States reported by the autopilot upgrade plan."""

    EMPTY = ""
    SCHEDULABLE = "Schedulable"
    SCHEDULABLE_WAIT = "SchedulableWait"
    COMPLETED = "Completed"
    WARNING = "Warning"
    INCONSISTENT_TARGETS = "InconsistentTargets"
    INCOMPLETE_TARGETS = "IncompleteTargets"
    RESTRICTED = "Restricted"
    MISSING_SIGNAL_NODE = "MissingSignalNode"
    APPLY_FAILED = "ApplyFailed"

    FAILURES: FrozenSet[str] = frozenset(
        {
            WARNING,
            INCONSISTENT_TARGETS,
            INCOMPLETE_TARGETS,
            RESTRICTED,
            MISSING_SIGNAL_NODE,
            APPLY_FAILED,
        }
    )
    IN_PROGRESS: FrozenSet[str] = frozenset({SCHEDULABLE, SCHEDULABLE_WAIT})
    ENDED: FrozenSet[str] = FAILURES | {COMPLETED}


class ConditionType:
    HIGH_AVAILABILITY = "HighAvailability"
    REGISTRY_MIGRATION = "RegistryMigrationStatus"


class MigrationReason:
    COMPLETED = "MigrationJobCompleted"
    SEAWEED_NOT_DEPLOYED = "SeaweedChartNotDeployed"
    IN_PROGRESS = "MigrationJobInProgress"
    FAILED = "MigrationJobFailed"


class JobState:
    CREATED = "JobCreated"
    WAITING_DELETION = "WaitingPreviousJobDeletion"
    RUNNING = "JobRunning"
    SUCCEEDED = "JobSucceeded"
    FAILED = "JobFailed"
