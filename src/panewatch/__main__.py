from panewatch.cli import main

main()
