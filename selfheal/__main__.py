from selfheal.cli import main

main(prog_name="selfheal")
