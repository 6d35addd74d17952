# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rescueboot/bootstrap/node/actions.py
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from rescueboot.bootstrap.cluster import ClusterJoinError, JoinCredential
from rescueboot.errors import LocalCommandError, TerminalTransportError, TerminalVerificationError
from rescueboot.observers.events import ActionRetry, ManagerPublished
from rescueboot.utils.execution import ExecutionContext
from rescueboot.utils.network import wait_for_down, wait_for_up
from rescueboot.utils.retry import Outcome, RetryState, with_retry
from rescueboot.utils.ssh import HostKeyMismatchError

from .models import Action, Target

Handler = Callable[[Target, ExecutionContext], Optional[Outcome]]

# One handler per Action, registered at import time.
_HANDLERS: Dict[Action, Handler] = {}


def register(action: Action):
    """Decorator to register the handler for an action."""
    def _wrap(fn: Handler) -> Handler:
        _HANDLERS[action] = fn
        return fn
    return _wrap


def get(action: Action) -> Handler:
    """Fetch the handler for an action. Raises KeyError if none is registered."""
    return _HANDLERS[action]


def has(action: Action) -> bool:
    return action in _HANDLERS


# ------------------ helpers ------------------

def template_params(target: Target, ctx: ExecutionContext) -> Dict[str, Any]:
    return {
        "hostname": target.hostname,
        "address": target.address,
        "ip": target.address,
        "login": target.login,
        "password": target.password,
        "discovery_token": ctx.discovery_token,
        "discovery_url": ctx.discovery_token,
        "public_keys": target.public_keys,
    }


_TARGET_PASSWORD = object()


def _remote(target: Target, ctx: ExecutionContext, *, password: Any = _TARGET_PASSWORD):
    if password is _TARGET_PASSWORD:
        password = target.password
    return ctx.channel.session(target.address, target.login, password)


def _retry_logger(target: Target, ctx: ExecutionContext, message: str):
    def on_retry(state: RetryState) -> None:
        ctx.log.warning("%s (retries: %d, next try in %ss): %s", message, state.attempt, state.delay, state.last_error)
        ctx.emit(
            ActionRetry,
            host=target.address,
            operation=state.operation,
            attempt=state.attempt,
            delay_s=state.delay,
            error=state.last_error,
        )
    return on_retry


# ------------------ actions ------------------

@register(Action.REMOVE_FROM_LOCAL_KNOWN_HOSTS)
def remove_from_local_known_hosts(target: Target, ctx: ExecutionContext) -> Outcome:
    ctx.known_hosts.forget(target.hostname, target.address)
    return Outcome.ok()


@register(Action.ENABLE_RESCUE_MODE)
def enable_rescue_mode(target: Target, ctx: ExecutionContext) -> Outcome:
    def attempt() -> Outcome:
        result = ctx.api.enable_rescue(target.address, target.rescue_os, target.rescue_os_bit)
        rescue = result.data.get("rescue") if result.success else None
        if rescue and rescue.get("password"):
            target.password = rescue["password"]
            return Outcome.ok(result)
        return Outcome.retryable(str(result), result)

    def deactivate(state: RetryState) -> None:
        # leave the host clean before the next activation attempt
        result = ctx.api.disable_rescue(target.address)
        if not result.success:
            ctx.log.warning("Could not deactivate rescue system: %s", result)

    outcome = with_retry(
        attempt,
        name="enable_rescue_mode",
        counter=target.retries,
        before_retry=deactivate,
        on_retry=_retry_logger(target, ctx, "Problem while trying to activate rescue system"),
        sleep=ctx.sleep,
    )
    ctx.log.info("IP: %s | username: %s | password: %s", target.address, target.login, target.password)
    return outcome


@register(Action.RESET)
def reset(target: Target, ctx: ExecutionContext) -> Outcome:
    def attempt() -> Outcome:
        result = ctx.api.reset(target.address, "hw")
        if result.success:
            return Outcome.ok(result)
        return Outcome.retryable(str(result), result)

    return with_retry(
        attempt,
        name="reset",
        counter=target.retries,
        on_retry=_retry_logger(target, ctx, "Problem while trying to reset/reboot system"),
        sleep=ctx.sleep,
    )


@register(Action.WAIT_FOR_SSH_DOWN)
def wait_for_ssh_down(target: Target, ctx: ExecutionContext) -> Outcome:
    wait_for_down(
        target.address,
        ctx.settings.ssh.port,
        interval=ctx.settings.wait.interval,
        timeout=ctx.settings.wait.probe_timeout,
        probe=ctx.probe,
        sleep=ctx.sleep,
        logger=ctx.log,
    )
    return Outcome.ok()


@register(Action.WAIT_FOR_SSH_UP)
def wait_for_ssh_up(target: Target, ctx: ExecutionContext) -> Outcome:
    wait_for_up(
        target.address,
        ctx.settings.ssh.port,
        interval=ctx.settings.wait.interval,
        timeout=ctx.settings.wait.probe_timeout,
        probe=ctx.probe,
        sleep=ctx.sleep,
        logger=ctx.log,
    )
    return Outcome.ok()


@register(Action.UPDATE_LOCAL_KNOWN_HOSTS)
def update_local_known_hosts(target: Target, ctx: ExecutionContext) -> Outcome:
    """
    Connect once so a changed host key surfaces here. A mismatch is expected
    after a reinstall: record the new key and carry on.
    """
    try:
        with _remote(target, ctx):
            ctx.log.info("Removing SSH keys for %s from local known_hosts file ...", target.hostname)
            ctx.known_hosts.forget(target.hostname, target.address)
    except HostKeyMismatchError as e:
        ctx.known_hosts.remember(e.hostname, e.key)
        return Outcome.recovered("Remote host key has been added to local known_hosts file.")
    return Outcome.ok()


@register(Action.INSTALLIMAGE)
def installimage(target: Target, ctx: ExecutionContext) -> Outcome:
    # render first: a broken template must not leave half-copied files behind
    cloud_config = ctx.renderer.render(target.cloud_config, template_params(target, ctx))
    install = ctx.settings.install

    with _remote(target, ctx) as ssh:
        ssh.put_text("/tmp/cloud-config.yaml", cloud_config)
        ssh.exec(f"wget -q {install.coreos_install_url} -O /tmp/coreos-install")
        ssh.exec(f"wget -q {install.ct_url} -O /tmp/ct")
        ssh.exec("chmod a+x /tmp/coreos-install")
        ssh.exec("chmod a+x /tmp/ct")
        ssh.exec("/tmp/ct < /tmp/cloud-config.yaml > /tmp/ignition.json")
        ctx.log.info("Remote executing: %s", target.install_cmd)
        output = ssh.exec(target.install_cmd)
        ctx.log.info(output)
    return Outcome.ok()


@register(Action.REBOOT)
def reboot(target: Target, ctx: ExecutionContext) -> Outcome:
    ctx.log.info("Rebooting ...")
    with _remote(target, ctx) as ssh:
        try:
            ssh.exec("reboot", check=False)
        except TerminalTransportError as e:
            # the host may drop the connection before reporting an exit status
            ctx.log.debug("connection closed while rebooting: %s", e)
    return Outcome.ok()


@register(Action.VERIFY_INSTALLATION)
def verify_installation(target: Target, ctx: ExecutionContext) -> Outcome:
    ctx.log.info("Verifying the installation ...")
    target.login = ctx.settings.install.install_login
    with _remote(target, ctx, password=None) as ssh:
        observed = ssh.exec("cat /etc/hostname").strip()
    if observed != target.hostname:
        raise TerminalVerificationError(target.hostname, observed)
    ctx.log.info("The installation has been successful")
    return Outcome.ok(observed)


@register(Action.CONFIGURE_ROUTE)
def configure_route(target: Target, ctx: ExecutionContext) -> Outcome:
    if not target.route_cmd:
        return Outcome.ok()
    with _remote(target, ctx) as ssh:
        ctx.log.info("Remote executing: %s", target.route_cmd)
        output = ssh.exec(target.route_cmd)
        ctx.log.info(output)
    return Outcome.ok()


@register(Action.CLUSTER_JOIN)
def cluster_join(target: Target, ctx: ExecutionContext) -> Outcome:
    if not ctx.cluster:
        ctx.log.debug("cluster mode is off, nothing to join")
        return Outcome.ok()

    if target.is_manager:
        if ctx.handoff is None:
            raise ClusterJoinError("manager has nowhere to publish its join credential")
        with _remote(target, ctx) as ssh:
            cmd = "docker swarm init"
            ctx.log.info("executing %s", cmd)
            ssh.exec(cmd)

            cmd = "docker swarm join-token worker -q"
            ctx.log.info("executing %s", cmd)
            join_token = ssh.exec(cmd).strip()

        ctx.log.info("got join token %s", join_token)
        credential = JoinCredential(token=join_token, address=target.address)
        ctx.handoff.publish(credential)
        ctx.emit(ManagerPublished, host=target.address, address=credential.address)
        return Outcome.ok(credential)

    if not target.join_token or not target.join_address:
        raise ClusterJoinError(f"{target.address} has no join credential to join the cluster with")
    with _remote(target, ctx) as ssh:
        cmd = f"docker swarm join --token {target.join_token} {target.join_address}"
        ctx.log.info("executing %s", cmd)
        ssh.exec(cmd)
    return Outcome.ok()


@register(Action.POST_INSTALL)
def post_install(target: Target, ctx: ExecutionContext) -> Outcome:
    if not target.post_install:
        return Outcome.ok()

    cmd = ctx.renderer.render(target.post_install, template_params(target, ctx))
    ctx.log.info("Executing post_install:\n %s", cmd)
    rc, output = ctx.local_runner(cmd)
    ctx.log.info(output)
    if rc != 0:
        raise LocalCommandError(f"post_install exited with {rc}")
    return Outcome.ok(output)


@register(Action.POST_INSTALL_REMOTE)
def post_install_remote(target: Target, ctx: ExecutionContext) -> Outcome:
    if not target.post_install_remote:
        return Outcome.ok()

    script = ctx.renderer.render(target.post_install_remote, template_params(target, ctx))
    commands = [line.strip() for line in script.splitlines() if line.strip()]
    with _remote(target, ctx) as ssh:
        for cmd in commands:
            ctx.log.info("executing %s", cmd)
            ssh.exec(cmd)
    return Outcome.ok()
