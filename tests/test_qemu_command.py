from vmsupervisor.core.models import LaunchCommand, VMSettings
from vmsupervisor.launch.qemu import windows10_command


def _option_values(args, option):
    return [args[i + 1] for i, arg in enumerate(args) if arg == option]


def test_windows10_command_layout():
    command = windows10_command(VMSettings(base_dir="/vm"))

    assert command.executable == "/vm/sysroot-macos-arm64/bin/qemu-system-aarch64"
    assert command.env == {"DYLD_LIBRARY_PATH": "/vm/sysroot-macos-arm64/lib"}
    assert command.args[:2] == ["-L", "/vm/UTM.app/Contents/Resources/qemu"]
    assert _option_values(command.args, "-accel") == ["hvf", "tcg,tb-size=1536"]
    assert _option_values(command.args, "-smp") == ["cpus=8,sockets=1,cores=8,threads=1"]
    assert _option_values(command.args, "-m") == ["12288"]
    assert _option_values(command.args, "-bios") == ["/vm/Images/QEMU_EFI.fd"]
    assert _option_values(command.args, "-netdev") == ["user,id=net0,hostfwd=tcp::8080-:8080"]
    assert _option_values(command.args, "-drive") == [
        "if=none,media=disk,id=drive0,file=/vm/Images/win10.qcow2,cache=writethrough",
        "if=none,media=cdrom,id=drive2,file=/vm/Images/virtio.iso,cache=writethrough",
    ]
    assert command.args[-3:] == ["-snapshot", "-vnc", ":3"]


def test_windows10_command_follows_vm_settings():
    vm = VMSettings(base_dir="/vm", cpus=4, memory_mb=8192, vnc_display=5, host_port=9090, snapshot=False)

    command = windows10_command(vm)

    assert _option_values(command.args, "-smp") == ["cpus=4,sockets=1,cores=4,threads=1"]
    assert _option_values(command.args, "-m") == ["8192"]
    assert _option_values(command.args, "-netdev") == ["user,id=net0,hostfwd=tcp::9090-:8080"]
    assert _option_values(command.args, "-vnc") == [":5"]
    assert "-snapshot" not in command.args


def test_launch_command_render_quotes_arguments():
    command = LaunchCommand(
        executable="/opt/my vm/qemu",
        args=["-name", "Virtual Machine"],
        env={"DYLD_LIBRARY_PATH": "/opt/my vm/lib"},
    )

    assert command.render() == (
        "DYLD_LIBRARY_PATH='/opt/my vm/lib' '/opt/my vm/qemu' -name 'Virtual Machine'"
    )
