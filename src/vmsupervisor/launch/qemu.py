from pathlib import Path
from typing import TYPE_CHECKING

from vmsupervisor.core.models import LaunchCommand

if TYPE_CHECKING:
    from vmsupervisor.core.models import VMSettings


def windows10_command(vm: "VMSettings") -> LaunchCommand:
    """
    Build the QEMU command for the Windows 10 buildlet VM, ready to be started.

    ``vm.base_dir`` must contain the VM images and the UTM components
    (``UTM.app`` and ``sysroot-macos-arm64``).
    """
    base = Path(vm.base_dir).expanduser()
    images = base / "Images"
    cpus = vm.cpus

    args = [
        "-L", str(base / "UTM.app/Contents/Resources/qemu"),
        "-cpu", "max",
        "-smp", f"cpus={cpus},sockets=1,cores={cpus},threads=1",
        "-machine", "virt,highmem=off",
        "-accel", "hvf",
        "-accel", "tcg,tb-size=1536",
        "-boot", "menu=on",
        "-m", str(vm.memory_mb),
        "-name", "Virtual Machine",
        "-device", "qemu-xhci,id=usb-bus",
        "-device", "ramfb",
        "-device", "usb-tablet,bus=usb-bus.0",
        "-device", "usb-mouse,bus=usb-bus.0",
        "-device", "usb-kbd,bus=usb-bus.0",
        "-device", "virtio-net-pci,netdev=net0",
        "-netdev", f"user,id=net0,hostfwd=tcp::{vm.host_port}-:{vm.guest_port}",
        "-bios", str(images / "QEMU_EFI.fd"),
        "-device", "nvme,drive=drive0,serial=drive0,bootindex=0",
        "-drive", f"if=none,media=disk,id=drive0,file={images / 'win10.qcow2'},cache=writethrough",
        "-device", "usb-storage,drive=drive2,removable=true,bootindex=1",
        "-drive", f"if=none,media=cdrom,id=drive2,file={images / 'virtio.iso'},cache=writethrough",
    ]
    # Without -snapshot the guest disk keeps state between runs.
    if vm.snapshot:
        args.append("-snapshot")
    args.extend(["-vnc", f":{vm.vnc_display}"])

    return LaunchCommand(
        executable=str(base / "sysroot-macos-arm64/bin/qemu-system-aarch64"),
        args=args,
        env={"DYLD_LIBRARY_PATH": str(base / "sysroot-macos-arm64/lib")},
    )
