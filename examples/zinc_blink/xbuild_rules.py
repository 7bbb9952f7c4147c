"""Rules for a firmware image built from the zinc library and one application.

Usage:
    PLATFORM=lpc17xx APP=blink xbuild build
    xbuild build -p k20 -a blink --debug elf
"""

from xbuild import ref


def rules(b):
    ctx = b.context

    b.provide_stdlibs()
    app_marker = b.track_application_name()

    zinc = ctx.src_path("main.rs")
    b.compile_rust("zinc", ctx.rlib_path(zinc), zinc, crate_type="lib", out_dir=True)
    b.compile_rust(
        "app",
        ctx.intermediate_path("app.o"),
        ctx.app_path,
        deps=[ref("zinc"), app_marker],
        crate_type="lib",
        ignore_warnings=["dead_code"],
    )
    b.compile_c("isr", ctx.intermediate_path("isr.o"), ctx.src_path("isr.c"))

    layout = ctx.platform_path("layout.ld")
    b.link_binary("elf", ctx.build_path("zinc.elf"), deps=[ref("app"), ref("isr"), layout], script=layout)

    b.make_binary("bin", ctx.build_path("zinc.bin"), ref("elf"))
    b.listing("lst", ctx.build_path("zinc.lst"), ref("elf"))
    b.report_size("size", ref("elf"))

    b.alias("all", [ref("bin"), ref("lst")])
    b.default("all")
