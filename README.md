# naiscli

A command line utility for working with the Nais platform. It writes
kubeconfig entries for the clusters your Google account can reach, creates
time-limited AivenApplications, attaches debug containers to running
workloads and checks that the device agents are running.

## Installation

```
pip install .
```

This installs the `nais` command. The `gcloud` and `kubectl` tools must be
installed and on your `PATH`: Google logins, access tokens and account
lookups go through `gcloud`, and every Kubernetes request goes through
`kubectl`.

## Usage

```
nais --help
nais --version
```

### Logging in

```
nais login
```

Runs `gcloud auth login --update-adc`.

### Kubeconfig

```
nais kubeconfig
nais kubeconfig --overwrite --exclude dev-gcp,prod-gcp
nais kubeconfig --clear --verbose
```

First checks that gcloud has an active account and that Application Default
Credentials exist (or `GOOGLE_APPLICATION_CREDENTIALS` is set). It then
searches your GCP projects for clusters, including on-premises ones, and
adds clusters, contexts and users to the kubeconfig named by `KUBECONFIG`,
or `~/.kube/config` when that is unset.

- `-o`, `--overwrite`: replace existing entries with the same name.
- `-c`, `--clear`: start from an empty set of clusters, contexts and users.
- `-e`, `--exclude`: leave out clusters; repeat it or give a comma separated list.
- `-v`, `--verbose`: print the project filter, the projects found and skipped entries.

Users authenticate through `gke-gcloud-auth-plugin` (GKE clusters) or
`kubelogin` (on-premises clusters); a warning is printed when either is not
on your `PATH`. When running under WSL this is reported on screen.

### Aiven

```
nais aiven create kafka my.user my-team --pool nav-dev --expire 1
nais aiven create opensearch my.user my-team --instance logs --access read
nais aiven tidy
```

`create service username namespace` makes a protected AivenApplication that
expires after `--expire` days (default 1). The namespace must exist. Without
`--secret` a secret name is derived from the username and namespace.

- `-p`, `--pool`: Kafka only; must contain a dash (default `nav-dev`).
- `-i`, `--instance`: OpenSearch only.
- `-a`, `--access`: OpenSearch only; one of `read`, `write`, `readwrite`, `admin`.
- `-s`, `--secret`: name of the secret to use.

`tidy` deletes every directory under the temporary directory whose path
contains `aiven-secret-`.

### Debugging workloads

```
nais debug my-app
nais debug my-app --copy --namespace my-team
nais debug --by-pod my-app
nais debug tidy my-app
```

Pods are found by the label `app.kubernetes.io/name=<workload>`, falling back
to `app=<workload>`. Without `--copy` an ephemeral debug container is added to
the first pod with `kubectl debug`. With `--copy` a copy of the pod named
`<pod>-nais-debugger` is made with a debug container, leaving the original
untouched; if that copy already exists, `nais` waits for its debugger
container to run and attaches to it.

- `-c`, `--context`: the kubeconfig context to use.
- `-n`, `--namespace`: the namespace to use (default: the current one).
- `-cp`, `--copy`: work on pod copies.
- `-p`, `--by-pod`: choose the pod from a list instead of taking the first.

`tidy` asks, pod by pod, whether to delete pods carrying debug containers
(or, with `--copy`, the pod copies).

### Device checks

```
nais device doctor
```

Reports whether the `launcher` (Kolide) and `osqueryd` processes are running.

### Extensions

If the first argument is not a known command, `nais` looks for a program
named `nais-<argument>` on your `PATH` and runs it with the remaining
arguments.

## Using it as a library

- `naiscli.kubeconfig`: `create_kubeconfig(email, options, api)`, with
  `FilterOptions` and `GcpApi`; `load_kubeconfig` and `write_kubeconfig`.
- `naiscli.aiven`: `setup(...)` returning an `Aiven` whose
  `generate_application()` creates or updates the AivenApplication;
  `tidy_local_secrets()`.
- `naiscli.aiven_services`: `Kafka`, `OpenSearch`, `from_string`.
- `naiscli.debug`: `DebugConfig` and `Debugger` with `debug()` and `tidy()`.
- `naiscli.k8s`: `KubeClient`, `setup_client(context)`.
- `naiscli.doctor`: `Examination` running `Check`s concurrently.
- `naiscli.gcp`: `validate_user_login`, `get_active_user_email`, `login`.
- `naiscli.option`: `Option`, `some`, `none`.

## What it does not do

- No `device connect`, `disconnect`, `status`, `config` or `jita`
  commands; `device` offers only `doctor`, and `kubeconfig` does not check
  a device connection.
- No `postgres` commands and no `validate` command.
- No `aiven get`: configuration files are not generated from Aiven secrets,
  even though `aiven create` prints such a command as a next step.
- No usage metrics are collected or sent.